# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Main entry point for running etag_runner as a module."""

from etag_runner.cli import main

if __name__ == "__main__":
    main()
