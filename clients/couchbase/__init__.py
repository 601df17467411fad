from .config import (
    VALID_PROTOCOLS,
    CouchbaseConf,
    auth,
    connect,
    check_connection
)
from .keyspace import Keyspace
from .database import Database
from .base_model import (
    BaseModelCouchbase,
    BaseCouchbaseEntityData,
    DataT,
    T
)
