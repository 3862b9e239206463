"""Client-side session reconciliation: local snapshots, countdown timer, multi-tab sync."""
