#!/usr/bin/env python3
import argparse
import logging
import os
import sys
from inspect import cleandoc

from csrapprover.app import ApprovalController
from csrapprover.config import Config
from csrapprover.errors import ConfigurationError
from csrapprover.inspectors.defaults import default_registry

DESCRIPTION = """
Automatically approve or deny Kubernetes CertificateSigningRequests.

Requests are first passed through the filters; a request any filter objects to is left alone.
The first denier objecting denies the request. Otherwise it is approved, logging whatever the
warners object to. Decided requests are deleted after --delete-after.

Inspectors are given as NAME or NAME=CONFIG. Known inspectors: {inspectors}
"""

LOG_LEVELS = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description=cleandoc(DESCRIPTION).format(inspectors=", ".join(default_registry().names())),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--kubeconfig", help="Path to a kubeconfig, in-cluster service account otherwise")
    parser.add_argument("-c", "--config", help="YAML file with the same settings as the flags")
    parser.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=[],
        help="Inspector filtering the set of requests to handle, repeatable",
    )
    parser.add_argument(
        "--denier",
        dest="deniers",
        action="append",
        default=[],
        help="Inspector denying requests, repeatable. Consulted in order",
    )
    parser.add_argument(
        "--warner",
        dest="warners",
        action="append",
        default=[],
        help="Inspector logging warnings without blocking approval, repeatable",
    )
    parser.add_argument(
        "--delete-after",
        help="Duration after which decided requests are deleted, e.g. 90s, 1m, 1h30m (default 1m)",
    )
    parser.add_argument(
        "--cluster-domain",
        help="Cluster DNS domain used by the pod inspectors (default cluster.local)",
    )
    parser.add_argument(
        "--metrics-port", type=int, help="Port for the Prometheus metrics, 0 to disable (default 8081)"
    )
    parser.add_argument(
        "--max-conflict-retries",
        type=int,
        help="Give up on a request after this many conflicting updates, 0 for no limit (default 10)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default INFO)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """
    Wrapper for console_scripts
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Workaround for concatenated KUBECONFIG files. pykube is missing the support
    if ":" in os.environ.get("KUBECONFIG", ""):
        os.environ["KUBECONFIG"] = os.environ["KUBECONFIG"].split(":")[0]

    try:
        config = Config.from_file(args.config) if args.config else Config()
        config.update_from_args(args)
        controller = ApprovalController(config)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        controller.run()
    except KeyboardInterrupt:
        controller.stop()


if __name__ == "__main__":
    main()
