# SPDX-License-Identifier: AGPL-3.0-or-later
"""Production batches: planning, split/merge and the per-batch workflow."""
