import argparse
import logging
import os
import subprocess
import sys

from utils.logging_utils import setup_logging

_PYTHON_DIR = os.path.dirname(os.path.abspath(__file__))


def load_script_paths():
    return {
        "delete_artifacts": os.path.join("scripts", "cleanup_artifacts.py"),
    }


def get_script_descriptions():
    return {
        "delete_artifacts": "Delete stale release/stemcell versions (keeps the newest 2); --remove-all also purges orphaned disks",
    }


def run_script(script_path, args):
    """Run a script with the given arguments, returning its exit code"""
    full_path = os.path.join(_PYTHON_DIR, script_path)
    if not os.path.exists(full_path):
        logging.error(f"Script not found: {full_path}")
        return 1

    logging.info(f"Running script: {script_path}")
    logging.info(f"Arguments: {args}")

    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [_PYTHON_DIR, env.get("PYTHONPATH")]))
    try:
        subprocess.run([sys.executable, full_path] + args, check=True, env=env)
    except subprocess.CalledProcessError as e:
        logging.error(f"Error running script {script_path}: {e}")
        return e.returncode
    return 0


def parse_arguments(argv=None):
    descriptions = get_script_descriptions()
    epilog = "Available jobs:\n" + "\n".join(f"  {name:<18} {text}" for name, text in descriptions.items())
    parser = argparse.ArgumentParser(
        description="Director artifact cleaner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    parser.add_argument("job", choices=sorted(load_script_paths()), help="Job to run")
    parser.add_argument("job_args", nargs=argparse.REMAINDER, help="Arguments passed through to the job")
    return parser.parse_args(argv)


def main(argv=None):
    setup_logging()
    args = parse_arguments(argv)
    script_path = load_script_paths()[args.job]
    return run_script(script_path, args.job_args)


if __name__ == "__main__":
    sys.exit(main())
