# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for Pulseboard.

This package contains domain services that encapsulate business logic.

Domains:
    metrics: Dashboard metric calculators, cache-aside reads and tiered
        background recomputation.
"""
