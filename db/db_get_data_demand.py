import oracledb

from optimize.models import DemandLine, DEFAULT_COIL_CODE

class DemandGetters:
    def get_target_run(self):
        connection = None
        try:
            connection = self.pool.acquire()
            cursor = connection.cursor()
            # oldest pending run (status 9)
            query = """
                SELECT run_id, schedule_mode, start_date
                FROM (
                    SELECT run_id, schedule_mode, start_date
                    FROM tc_slitting_run
                    WHERE run_status = 9
                    ORDER BY request_time, run_id
                )
                WHERE ROWNUM = 1
            """
            cursor.execute(query)
            result = cursor.fetchone()
            if result:
                run_id, schedule_mode, start_date = result
                if start_date is not None and hasattr(start_date, 'date'):
                    start_date = start_date.date()
                return run_id, schedule_mode, start_date
            return None, None, None
        except oracledb.Error as error:
            print(f"Error while fetching target run: {error}")
            return None, None, None
        finally:
            if connection:
                self.pool.release(connection)

    def get_demands_from_db(self, run_id):
        connection = None
        try:
            connection = self.pool.acquire()
            cursor = connection.cursor()
            sql_query = """
                SELECT
                    line_id, coil_code, coil_description, width,
                    planned_consumption, reserved_stock, target_tons, due_date
                FROM
                    tc_coil_demand
                WHERE run_id = :p_run_id
                ORDER BY coil_code, due_date, width
            """
            cursor.execute(sql_query, p_run_id=run_id)
            rows = cursor.fetchall()
            demands = []
            for row in rows:
                line_id, coil_code, coil_description, width, planned, reserved, target_tons, due_date = row
                if target_tons is None:
                    target_tons = max(0.0, float(planned or 0) - float(reserved or 0))
                demands.append(DemandLine(
                    width=float(width),
                    target_tons=float(target_tons),
                    due_date=due_date.date() if due_date is not None else None,
                    coil_code=coil_code or DEFAULT_COIL_CODE,
                    coil_description=coil_description or '',
                    planned_consumption=float(planned) if planned is not None else None,
                    reserved_stock=float(reserved) if reserved is not None else None,
                    line_id=str(line_id),
                ))
            print(f"Successfully fetched {len(demands)} demand lines for run {run_id}")
            return demands
        except oracledb.Error as error:
            print(f"Error while getting demand lines from DB: {error}")
            return None
        finally:
            if connection:
                self.pool.release(connection)
