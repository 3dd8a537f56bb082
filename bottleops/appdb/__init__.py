# SPDX-License-Identifier: AGPL-3.0-or-later
"""Application database: models, engine, transaction and numbering helpers."""
