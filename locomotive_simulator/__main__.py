"""CLI entry point for the Steam Locomotive Simulator.

Usage::

    locomotive-simulator run --config simulator.yaml
    locomotive-simulator run -c simulator.yaml --iterations 5000 --log-file logs/simulator.log
    locomotive-simulator show-state --iterations 210
    locomotive-simulator init-config --output simulator.yaml

Exit status is 0 on normal completion and 1 when the configuration is
missing or invalid, or no initial access token could be obtained.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap

_LOG_FORMAT = "%(asctime)s %(name)-40s %(levelname)-7s %(message)s"

# ---------------------------------------------------------------------------
# Sample YAML config template for init-config
# ---------------------------------------------------------------------------
_SAMPLE_CONFIG = """\
# Steam Locomotive Simulator configuration

simulator:
  iterations: 100000                  # number of ticks
  dt: 0.1                             # simulated seconds per tick
  log_interval: 500                   # log the state every N ticks
  log_level: INFO                     # DEBUG, INFO, WARNING, ERROR
  locomotive_id: locomotive_topcoder

# physics:
#   x1: 425205.75                     # multiplies pressure
#   x2: 325000                        # multiplies speed
#   x3: 1.7                           # standing dead-zone on acceleration
#   fuel_add_amt: 1.0
#   max_fuel_mass_in_fire_chamber: 10.0
#   pressure_multiplier: 2.0
#   fuel_burn_amt: 0.1
#   initial_fuel_mass_in_tender: 12700
#   locomotive_own_mass: 500000

sampling:
  max_sends_per_key: 100              # lifetime cap per key
  send_interval_s: 100                # simulated seconds between sends of a key

delivery:
  batch_size: 10                      # items per request
  retry_delay_s: 5                    # wait after a failed request
  # poll_interval_s: 0.35
  # request_timeout_s: 30
  # ack_timeout_s: 30

alerts:
  max_pressure: 21.800000000007
  max_speed: 27.41731
  min_fuel_mass_in_tender: 2800

# Required: where the data goes and how to authenticate.
services:
  auth_url: https://your-uaa.example.com
  client_id: simulator_client
  client_secret: change-me
  asset_url: https://your-asset.example.com/
  asset_zone_id: your-asset-zone-id
  time_series_url: wss://your-time-series.example.com/v1/stream/messages
  time_series_zone_id: your-time-series-zone-id
  # zone_header: Predix-Zone-Id
  # origin: http://www.topcoder.com
"""


# ======================================================================
# Main entry point
# ======================================================================


def main(argv: list[str] | None = None) -> None:
    epilog = textwrap.dedent("""\
        examples:
          locomotive-simulator run --config simulator.yaml
          locomotive-simulator run -c simulator.yaml --iterations 5000
          locomotive-simulator show-state --iterations 210
          locomotive-simulator init-config --output simulator.yaml
    """)

    parser = argparse.ArgumentParser(
        prog="locomotive-simulator",
        description="Simulate a steam locomotive and deliver its telemetry and alerts.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", title="commands")

    # -- run ---------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        help="Run the simulation and deliver data to both sinks.",
    )
    run_parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="simulator.yaml",
        help="Path to YAML config file (default: simulator.yaml).",
    )
    run_parser.add_argument(
        "--iterations",
        "-n",
        type=int,
        default=None,
        help="Override the number of ticks from the config file.",
    )
    run_parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from config, else INFO).",
    )
    run_parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write the log to this file (truncated on start).",
    )

    # -- show-state --------------------------------------------------------
    state_parser = subparsers.add_parser(
        "show-state",
        help="Run only the physics pipeline and print the final state as JSON.",
    )
    state_parser.add_argument(
        "--iterations",
        "-n",
        type=int,
        default=None,
        help="Number of ticks (default: from config, else 100000).",
    )
    state_parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Optional YAML config file for physics constants and dt.",
    )

    # -- init-config -------------------------------------------------------
    init_parser = subparsers.add_parser(
        "init-config",
        help="Generate a sample YAML configuration file.",
    )
    init_parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Write config to this file instead of stdout.",
    )

    # A leading flag (e.g. `locomotive-simulator -c sim.yaml`) implies "run".
    _known_commands = {"run", "show-state", "init-config"}
    raw_args = argv if argv is not None else sys.argv[1:]
    if raw_args and raw_args[0] not in _known_commands and raw_args[0] not in ("-h", "--help"):
        raw_args = ["run", *list(raw_args)]

    args = parser.parse_args(raw_args)

    if args.command is None:
        parser.print_help()
        return

    # -- Dispatch ----------------------------------------------------------
    if args.command == "run":
        sys.exit(_cmd_run(args))
    elif args.command == "show-state":
        sys.exit(_cmd_show_state(args.iterations, args.config))
    elif args.command == "init-config":
        _cmd_init_config(args.output)
    else:
        parser.print_help()


# ======================================================================
# Command implementations
# ======================================================================


def _configure_logging(level: str, log_file: str | None) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
    if log_file:
        from pathlib import Path

        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, mode="w")
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def _cmd_run(args: argparse.Namespace) -> int:
    """Execute the simulator; returns the process exit status."""
    from locomotive_simulator.config import ConfigError, load_yaml_config
    from locomotive_simulator.simulator import LocomotiveSimulator

    _configure_logging(args.log_level or "INFO", args.log_file)
    log = logging.getLogger("locomotive_simulator.cli")

    try:
        cfg = load_yaml_config(args.config)
    except (FileNotFoundError, ConfigError) as exc:
        log.error("--------------------------")
        log.error("%s", exc)
        log.error("Create one with 'locomotive-simulator init-config --output %s'", args.config)
        log.error("--------------------------")
        return 1

    if args.log_level is None:
        logging.getLogger().setLevel(getattr(logging, cfg.simulator.log_level.upper(), logging.INFO))

    report = LocomotiveSimulator(cfg).run(iterations=args.iterations)
    if report is None:
        return 1

    print(report.model_dump_json(indent=2))
    return 0


def _cmd_show_state(iterations: int | None, config_path: str | None) -> int:
    from locomotive_simulator.config import ConfigError, SimulatorYAMLConfig, load_yaml_config
    from locomotive_simulator.physics import TransferPipeline

    if config_path:
        try:
            cfg = load_yaml_config(config_path, require_services=False)
        except (FileNotFoundError, ConfigError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    else:
        cfg = SimulatorYAMLConfig()

    pipeline = TransferPipeline(cfg.physics, cfg.simulator.dt)
    count = cfg.simulator.iterations if iterations is None else iterations
    state = pipeline.run(pipeline.initial_state(), count)
    print(state.model_dump_json(indent=2))
    return 0


def _cmd_init_config(output_path: str | None) -> None:
    if output_path:
        from pathlib import Path

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text(_SAMPLE_CONFIG)
        print(f"Sample config written to {output_path}")
    else:
        print(_SAMPLE_CONFIG)


# ======================================================================
if __name__ == "__main__":
    main()
