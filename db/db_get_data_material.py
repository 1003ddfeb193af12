import oracledb

class MaterialGetters:
    def get_material_master_from_db(self):
        connection = None
        try:
            connection = self.pool.acquire()
            cursor = connection.cursor()
            sql_query = """
                SELECT coil_code, description, parent_width, line_rate
                FROM tc_coil_master
                WHERE use_yn = 'Y'
                ORDER BY coil_code
            """
            cursor.execute(sql_query)
            rows = cursor.fetchall()
            records = []
            for code, description, width, rate in rows:
                records.append({
                    'code': str(code),
                    'description': description or '',
                    'width': float(width),
                    'rate': float(rate or 0),
                })
            print(f"Successfully fetched {len(records)} material master rows")
            return records
        except oracledb.Error as error:
            print(f"Error while getting material master from DB: {error}")
            return None
        finally:
            if connection:
                self.pool.release(connection)
