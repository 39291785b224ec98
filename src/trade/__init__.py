"""
Trade deal notification engine.

Modules:
- enums:             deal stages, roles, statuses, tiers and priorities
- stages:            next-action resolution and stage labels
- snapshots:         read-only deal store and user directory
- reminder_ledger:   deduplication ledger for deadline reminders
- deadline_scanner:  hourly reminder scan
- digest:            daily per-user digest
- dispute_notifier:  dispute transition fan-out
- orchestrator:      run_deadline_scan, run_daily_digests, on_dispute_transition

Submodules are imported directly; this package does not re-export them
because database.models depends on trade.enums.
"""
