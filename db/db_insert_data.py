import oracledb

class DataInserters:
    """Slitting results: patterns, daily production plan and run status."""

    def update_run_status(self, run_id, status):
        connection = None
        try:
            connection = self.pool.acquire()
            cursor = connection.cursor()
            query = "update tc_slitting_run set run_status = :status, update_time = sysdate where run_id = :run_id"
            cursor.execute(query, status=status, run_id=run_id)
            connection.commit()
            print(f"Successfully updated run {run_id} to status {status}")
            return True
        except oracledb.Error as error:
            print(f"Error while updating run status: {error}")
            if connection:
                connection.rollback()
            return False
        finally:
            if connection:
                self.pool.release(connection)

    def delete_optimization_results(self, run_id):
        connection = None
        try:
            connection = self.pool.acquire()
            cursor = connection.cursor()
            cursor.execute("delete from tc_slitting_pattern where run_id = :run_id", run_id=run_id)
            cursor.execute("delete from tc_daily_plan where run_id = :run_id", run_id=run_id)
            connection.commit()
            print(f"Deleted previous optimization results for run {run_id}")
            return True
        except oracledb.Error as error:
            print(f"Error while deleting optimization results: {error}")
            if connection:
                connection.rollback()
            return False
        finally:
            if connection:
                self.pool.release(connection)

    def insert_pattern_results(self, connection, run_id, batch):
        """One row per (coil group, pattern). The caller owns the transaction."""
        cursor = connection.cursor()

        insert_query = """
            insert into tc_slitting_pattern (
                run_id, coil_code, pattern_id, parent_width, pattern, cut_cnt,
                used_width, waste_width, yield_pct, coils, prod_wgt
            ) values (
                :run_id, :coil_code, :pattern_id, :parent_width, :pattern, :cut_cnt,
                :used_width, :waste_width, :yield_pct, :coils, :prod_wgt
            )
        """

        bind_vars_list = []
        for coil_code, result in batch.results.items():
            for p in result.patterns:
                bind_vars_list.append({
                    'run_id': run_id,
                    'coil_code': coil_code,
                    'pattern_id': p.pattern_id,
                    'parent_width': result.parent_width,
                    'pattern': p.describe()[:200],
                    'cut_cnt': p.cut_count,
                    'used_width': p.used_width,
                    'waste_width': p.waste_width,
                    'yield_pct': round(p.yield_percentage, 3),
                    'coils': round(p.assigned_coils, 4),
                    'prod_wgt': round(p.total_production_weight, 3),
                })

        if bind_vars_list:
            cursor.executemany(insert_query, bind_vars_list)
        print(f"Prepared {len(bind_vars_list)} pattern rows for transaction.")
        return len(bind_vars_list)

    def insert_daily_plans(self, connection, run_id, schedule):
        """One row per (day, coil group, pattern) of the production calendar."""
        cursor = connection.cursor()

        insert_query = """
            insert into tc_daily_plan (
                run_id, plan_date, seq, coil_code, pattern_id, coils, prod_wgt,
                day_capacity, setup_wgt, capacity_pct, forced_yn
            ) values (
                :run_id, :plan_date, :seq, :coil_code, :pattern_id, :coils, :prod_wgt,
                :day_capacity, :setup_wgt, :capacity_pct, :forced_yn
            )
        """

        bind_vars_list = []
        for day in schedule:
            for seq, sp in enumerate(day.patterns, start=1):
                bind_vars_list.append({
                    'run_id': run_id,
                    'plan_date': day.day,
                    'seq': seq,
                    'coil_code': sp.coil_code,
                    'pattern_id': sp.pattern.pattern_id,
                    'coils': sp.coils,
                    'prod_wgt': round(sp.tons, 3),
                    'day_capacity': day.capacity,
                    'setup_wgt': day.setup_penalty_tons,
                    'capacity_pct': round(day.capacity_used_percent, 2),
                    'forced_yn': 'Y' if day.forced else 'N',
                })

        if bind_vars_list:
            cursor.executemany(insert_query, bind_vars_list)
        print(f"Prepared {len(bind_vars_list)} daily plan rows for transaction.")
        return len(bind_vars_list)
