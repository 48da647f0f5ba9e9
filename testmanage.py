#!/usr/bin/env python
"""
Run Django management commands against the test app.

    ./testmanage.py makemigrations ai_rag_documents
    ./testmanage.py --postgres migrate
    ./testmanage.py --postgres create_test_data
"""

import argparse
import os
import sys
import warnings

from django.core.management import execute_from_command_line

os.environ["DJANGO_SETTINGS_MODULE"] = "testapp.settings"
sys.path[:0] = ["src", "tests"]


def make_parser():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--deprecation",
        choices=["all", "pending", "imminent", "none"],
        default="imminent",
    )
    parser.add_argument(
        "--postgres",
        action="store_true",
        help="Use the PostgreSQL (pgvector) test database instead of SQLite",
    )
    return parser


def parse_args(args=None):
    return make_parser().parse_known_args(args)


def runtests():
    args, rest = parse_args()

    if args.deprecation == "all":
        warnings.simplefilter("default", DeprecationWarning)
        warnings.simplefilter("default", PendingDeprecationWarning)
    elif args.deprecation == "pending":
        warnings.simplefilter("default", PendingDeprecationWarning)

    if args.postgres:
        os.environ["AI_RAG_TEST_DATABASE"] = "postgres"

    execute_from_command_line([sys.argv[0], *rest])


if __name__ == "__main__":
    runtests()
