# Import all models here so they can be imported elsewhere with a single import
# The order of imports is important here - import base first
from app.models.base import Base
from app.models.user import User, UserRole, UserStatus
from app.models.department import Department
from app.models.program import Program, ProgramUpdate, ProgramType, ProgramStructure, ProgramStatus, UpdateKind
from app.models.participant import Participant, Gender, AgeGroup
from app.models.activity_log import ActivityLog

__all__ = [
    'Base', 'User', 'UserRole', 'UserStatus', 'Department', 'Program', 'ProgramUpdate',
    'ProgramType', 'ProgramStructure', 'ProgramStatus', 'UpdateKind', 'Participant',
    'Gender', 'AgeGroup', 'ActivityLog'
]
