# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""ETag-driven update-and-run loop for single remote scripts."""

__version__ = "0.1.0"
