# main.py
# -*- coding: utf-8 -*-
import sys
import logging
import argparse

from colorama import Fore, Style, init

import config
import settings_manager
import backup_runner
from backup_errors import ConfigurationError
from digest_utils.repair import build_item_lookup, repair_digests


# --- Colored print helpers ---

def print_title(text):
    print(f"{Style.BRIGHT}{Fore.RED}=== {text.upper()} ===")

def print_info(text):
    print(text)

def print_success(text):
    print(f"{Fore.GREEN}{text}")

def print_warning(text):
    print(f"{Fore.YELLOW}WARNING: {text}")

def print_error(text):
    print(f"{Style.BRIGHT}{Fore.RED}ERROR: {text}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="stepstate",
        description=f"{config.APP_NAME} - one-way backup of ITGmania/StepMania settings and saves to a git remote.")
    parser.add_argument("--config", metavar="PATH",
                        help=f"Configuration file (default: ${config.CONFIG_ENV_VAR}, then {config.CONFIG_FILENAME} "
                             "next to the program, in the app data folder or in a known install folder).")
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--backup", action="store_true", help="Run one backup now (default action).")
    action.add_argument("--repair-digests", metavar="DIR",
                        help="Regroup the songs listed in existing digests under their actual pack.")
    action.add_argument("--next-run", action="store_true", help="Show the next scheduled run and exit.")
    parser.add_argument("--no-dialog", action="store_true", help="Never show the failure dialog.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    parser.add_argument("--version", action="version", version=f"{config.APP_NAME} {config.APP_VERSION}")
    return parser


def _load(config_path):
    try:
        return settings_manager.load_configuration(config_path)
    except ConfigurationError as e:
        print_error(str(e))
        return None


def cmd_next_run(args):
    configuration = _load(args.config)
    if configuration is None:
        return 1
    print_info(f"Next scheduled run: {settings_manager.next_run_display(configuration.schedule_times, configuration.timezone)}")
    return 0


def cmd_repair_digests(args):
    configuration = _load(args.config)
    if configuration is None:
        return 1
    print_title("Digest repair")
    lookup = build_item_lookup(configuration.song_roots)
    if not lookup:
        print_warning("No songs found in the song folders; digests will be left as they are.")
    changed = repair_digests(args.repair_digests, lookup)
    if changed:
        print_success(f"{len(changed)} digest(s) repaired:")
        for name in changed:
            print_info(f"  {name}")
    else:
        print_success("All digests already up to date.")
    return 0


def main(argv=None):
    init(autoreset=True)
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.debug else logging.INFO

    if args.next_run:
        backup_runner.configure_logging(None, level=logging.WARNING)
        return cmd_next_run(args)
    if args.repair_digests:
        backup_runner.configure_logging(None, level=level)
        return cmd_repair_digests(args)

    exit_code = backup_runner.run_silent_backup(args.config, show_dialog=not args.no_dialog, level=level)
    if exit_code == 0:
        print_success("Backup completed.")
    else:
        print_error("Backup failed, see the log for details.")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
