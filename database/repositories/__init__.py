from database.repositories.base_repository import BaseRepository
from database.repositories.pool_repository import PoolRepository
from database.repositories.reference_repository import ReferenceRepository
from database.repositories.holder_repository import HolderRepository
from database.repositories.service_config_repository import ServiceConfigRepository
from database.repositories.outlook_repository import OutlookRepository

__all__ = [
    'BaseRepository',
    'PoolRepository',
    'ReferenceRepository',
    'HolderRepository',
    'ServiceConfigRepository',
    'OutlookRepository',
]
