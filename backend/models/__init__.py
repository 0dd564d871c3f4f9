"""Models package for the appliance and fuel register."""
from backend.models.schema import Base, Appliance, Fuel, User, UserAppliance, UserFuel
from backend.models.job import ImportJob, ImportJobEvent, JobStatus

__all__ = [
    'Base', 'Appliance', 'Fuel', 'User', 'UserAppliance', 'UserFuel',
    'ImportJob', 'ImportJobEvent', 'JobStatus',
]
