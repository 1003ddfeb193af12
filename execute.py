import pandas as pd
import time
import configparser
import os
import logging
import argparse
from dataclasses import replace
from datetime import date

import oracledb

from optimize.batch_optimize import (
    solve_batch, solve_batch_best_of, build_batch_schedule, BATCH_ERROR_KEY, SCHEDULE_ALAP, SCHEDULE_FORWARD,
)
from optimize.material_master import MaterialMaster
from optimize.models import demands_to_frame
from optimize.solver_config import SolverConfig
from line_schedule.lateness import align_forward_schedule, compute_max_lateness, compute_date_compliance
from db.db_connector import Database, CsvDatabase
from db.db_get_data_csv import DEFAULT_DEMANDS_CSV_PATH, DEFAULT_MATERIAL_MASTER_CSV_PATH

CONFIG_PATH = os.path.join('conf', 'config.ini')
RESULTS_DIR = 'results'

STATUS_DONE = 0
STATUS_RUNNING = 1
STATUS_FAILED = 99


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Coil slitting optimizer and production calendar")
    parser.add_argument('--csv', action='store_true', help="read demands and material master from CSV files")
    parser.add_argument('--demands', default=str(DEFAULT_DEMANDS_CSV_PATH), help="demand CSV path (--csv)")
    parser.add_argument('--master', default=str(DEFAULT_MATERIAL_MASTER_CSV_PATH), help="material master CSV path (--csv)")
    parser.add_argument('--best-of', type=int, default=None, help="randomized attempts per batch")
    parser.add_argument('--mode', choices=[SCHEDULE_ALAP, SCHEDULE_FORWARD], default=None, help="calendar mode")
    parser.add_argument('--start-date', type=date.fromisoformat, default=None, help="forward anchor (YYYY-MM-DD)")
    parser.add_argument('--seed', type=int, default=None, help="random seed for pattern sampling")
    parser.add_argument('--config', default=CONFIG_PATH)
    return parser.parse_args(argv)


def load_config(config_path):
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"{config_path} not found.")
    config = configparser.ConfigParser()
    config.read(config_path, encoding='utf-8')
    return config


def build_solver_config(config, args):
    """File values first, command-line flags on top."""
    solver_config = SolverConfig.from_config(config)
    overrides = {}
    if args.best_of is not None:
        overrides['best_of_attempts'] = args.best_of
    if args.start_date is not None:
        overrides['schedule_start_date'] = args.start_date
    if args.seed is not None:
        overrides['seed'] = args.seed
    return replace(solver_config, **overrides) if overrides else solver_config


def schedule_mode(config, args, run_mode=None):
    if args.mode:
        return args.mode
    if run_mode:
        return run_mode.lower()
    return config.get('schedule', 'mode', fallback=SCHEDULE_ALAP).strip().lower()


def process_run(run_id, demands, master_records, solver_config, mode):
    """Optimizes one run's demand list and builds its production calendar."""
    logging.info(f"\n{'='*60}")
    logging.info(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] Run {run_id} started")
    logging.info(f"Parameters: {solver_config}")
    logging.info(f"Schedule mode: {mode}")
    logging.info(f"{'='*60}")

    logging.info(f"--- Run {run_id} demand lines ---")
    logging.info("\n" + demands_to_frame(demands).to_string())

    material_master = MaterialMaster.from_records(master_records or [])
    logging.info(f"Material master snapshot: {len(material_master)} coil codes")

    if solver_config.best_of_attempts > 1:
        batch = solve_batch_best_of(demands, solver_config, attempts=solver_config.best_of_attempts,
                                    material_master=material_master)
    else:
        batch = solve_batch(demands, solver_config, material_master=material_master)

    if BATCH_ERROR_KEY in batch.errors:
        logging.error(f"[error] Run {run_id} rejected: {batch.errors[BATCH_ERROR_KEY].message}")
        return batch, None

    for code, result in batch.results.items():
        logging.info(f"\n# ================= {code}: patterns (parent {result.parent_width:g}mm) ================== #")
        logging.info("\n" + result.pattern_result.to_string())
        logging.info(f"\n# ================= {code}: fulfillment ================== #")
        logging.info("\n" + result.fulfillment_summary.to_string())

    logging.info("\n# ================= Coil summary ================== #")
    logging.info("\n" + batch.summary_frame.to_string())
    logging.info(f"Global: input {batch.total_global_input:.2f} T, output {batch.total_global_output:.2f} T, "
                 f"yield {batch.total_global_yield:.2f}%")

    if not batch.results:
        return batch, None

    if mode == SCHEDULE_FORWARD:
        descriptions = {g.coil_code: g.description for g in batch.groups}
        batch.schedule, anchor = align_forward_schedule(
            batch.results, demands, solver_config.daily_capacity, solver_config.setup_penalty,
            solver_config.schedule_start_date,
            lead_buffer_days=solver_config.lead_buffer_days,
            rest_weekdays=solver_config.rest_weekdays,
            rest_day_factor=solver_config.rest_day_factor,
            descriptions=descriptions,
        )
        if anchor != solver_config.schedule_start_date:
            logging.warning(f"Forward schedule moved to start {anchor} to meet due dates "
                            f"(requested {solver_config.schedule_start_date})")
    else:
        batch.schedule = build_batch_schedule(batch, demands, solver_config, SCHEDULE_ALAP)

    for warning in batch.schedule.warnings:
        logging.warning(warning)
    if batch.schedule.error:
        logging.error(f"[error] {batch.schedule.error.code}: {batch.schedule.error.message}")

    logging.info("\n# ================= Production calendar ================== #")
    logging.info("\n" + batch.schedule.to_frame().to_string())
    logging.info(f"Max lateness: {compute_max_lateness(batch.schedule, demands, solver_config.lead_buffer_days)} days")

    compliance = compute_date_compliance(batch.schedule, demands)
    logging.info("\n# ================= Date compliance ================== #")
    logging.info("\n" + compliance.to_string())
    return batch, compliance


def save_results(db, run_id, batch, compliance):
    """Writes the result CSV files and, with a database, the pattern and calendar tables."""
    os.makedirs(RESULTS_DIR, exist_ok=True)
    frames = [result.pattern_result.assign(coil_code=code) for code, result in batch.results.items()]
    if frames:
        pattern_path = os.path.join(RESULTS_DIR, f"{run_id}_patterns.csv")
        pd.concat(frames, ignore_index=True).to_csv(pattern_path, index=False, encoding='utf-8-sig')
        logging.info(f"[saved] {pattern_path}")
    if len(batch.schedule):
        schedule_path = os.path.join(RESULTS_DIR, f"{run_id}_schedule.csv")
        batch.schedule.to_frame().to_csv(schedule_path, index=False, encoding='utf-8-sig')
        logging.info(f"[saved] {schedule_path}")
    if compliance is not None and not compliance.empty:
        compliance_path = os.path.join(RESULTS_DIR, f"{run_id}_compliance.csv")
        compliance.to_csv(compliance_path, index=False, encoding='utf-8-sig')
        logging.info(f"[saved] {compliance_path}")

    if db.pool is None:
        return True

    connection = None
    try:
        connection = db.pool.acquire()
        db.insert_pattern_results(connection, run_id, batch)
        db.insert_daily_plans(connection, run_id, batch.schedule)
        connection.commit()
        logging.info("DB transaction committed.")
        db.update_run_status(run_id, STATUS_DONE)
        return True
    except oracledb.Error as e:
        logging.error(f"[error] Saving results failed: {e}")
        if connection:
            connection.rollback()
            logging.info("DB transaction rolled back.")
        db.update_run_status(run_id, STATUS_FAILED)
        return False
    finally:
        if connection:
            db.pool.release(connection)


def setup_logging(run_id):
    log_dir = RESULTS_DIR
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, f"{run_id}.log")

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path, mode='w', encoding='utf-8'),
            logging.StreamHandler()
        ]
    )


def main(argv=None):
    args = parse_args(argv)
    db = None
    run_id = None
    try:
        config = load_config(args.config)

        if args.csv:
            db = CsvDatabase()
            run_id = time.strftime('%Y%m%d%H%M%S')
            run_mode = None
            demands = db.get_demands_csv(args.demands)
            master_records = db.get_material_master_csv(args.master)
        else:
            db_config = config['database']
            db = Database(user=db_config['user'], password=db_config['password'], dsn=db_config['dsn'])
            run_id, run_mode, run_start = db.get_target_run()
            if not run_id:
                print("No pending run.")
                return
            if run_start and args.start_date is None:
                args.start_date = run_start
            db.delete_optimization_results(run_id)
            db.update_run_status(run_id, STATUS_RUNNING)
            demands = db.get_demands_from_db(run_id)
            master_records = db.get_material_master_from_db()

        setup_logging(run_id)
        solver_config = build_solver_config(config, args)

        if not demands:
            logging.error(f"[error] Run {run_id}: no demand lines.")
            if db.pool:
                db.update_run_status(run_id, STATUS_FAILED)
            return

        batch, compliance = process_run(run_id, demands, master_records, solver_config,
                                        schedule_mode(config, args, run_mode))
        if not batch.results:
            logging.error(f"[error] Run {run_id} produced no result. Status -> {STATUS_FAILED}.")
            if db.pool:
                db.update_run_status(run_id, STATUS_FAILED)
            return

        save_results(db, run_id, batch, compliance)

    except FileNotFoundError as e:
        logging.error(f"[fatal] Configuration file not found: {e}")
    except KeyboardInterrupt:
        logging.info("\nInterrupted by user.")
    except Exception as e:
        import traceback
        logging.error(f"\n[fatal] Unexpected error: {e}")
        logging.error(traceback.format_exc())
        if db and db.pool and run_id:
            db.update_run_status(run_id, STATUS_FAILED)
    finally:
        if db:
            db.close_pool()
        logging.info(f"\n{'='*60}")
        logging.info(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] Run {run_id} finished")


if __name__ == "__main__":
    main()
