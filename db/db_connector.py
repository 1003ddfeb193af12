import oracledb
from .db_get_data_csv import CsvGetters
from .db_get_data_demand import DemandGetters
from .db_get_data_material import MaterialGetters
from .db_insert_data import DataInserters

class Database(CsvGetters, DemandGetters, MaterialGetters, DataInserters):
    def __init__(self, user, password, dsn, min_pool=1, max_pool=1, increment=1):
        self.user = user
        self.password = password
        self.dsn = dsn
        self.pool = None
        try:
            self.pool = oracledb.create_pool(
                user=self.user,
                password=self.password,
                dsn=self.dsn,
                min=min_pool,
                max=max_pool,
                increment=increment
            )
            print("Successfully created Oracle connection pool.")
        except oracledb.Error as error:
            print(f"Error while creating connection pool: {error}")
            raise

    def close_pool(self):
        if self.pool:
            self.pool.close()
            print("Oracle connection pool closed.")


class CsvDatabase(CsvGetters):
    """File-only data source for runs without an Oracle connection."""
    pool = None

    def close_pool(self):
        pass
