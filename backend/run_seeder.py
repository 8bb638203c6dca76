"""Populate demo catalog, people and graded classes for local environments."""

import logging

from academic_admin.db import init_db
from academic_admin.seed import ensure_demo_data


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    init_db()
    ensure_demo_data()


if __name__ == "__main__":
    main()
