# SPDX-License-Identifier: MIT
"""Integration tests for plesk-cache.

These run the HTTP API, the sync engine and the real Plesk client together
against an in-process fake Plesk server. No external network access.
"""
