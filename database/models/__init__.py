from database.models.base import Base
from database.models.reference import Platform, Chain
from database.models.pool import Pool
from database.models.holder import HolderRecord, HolderHistoryPoint
from database.models.service_configuration import ServiceConfiguration
from database.models.outlook import PoolOutlook
