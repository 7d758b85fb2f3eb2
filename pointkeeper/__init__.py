"""
Pointkeeper — Points Ledger & Honor Engine
===========================================
Records point-valued events for the participants and groups of each
organization, fans group awards out to members (optionally gated on
attendance), and layers once-per-day honors on top of the ledger.
Every total is derived from the ledger by aggregation.

Package layout::

    pointkeeper/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Limits, default point rules, date parsing
    ├── context.py         # OperationContext (org, actor, logger)
    ├── errors.py          # Validation / NotFound / Conflict / Internal
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + one-transaction session helper
    │   ├── bulk.py        # Typed bulk-insert builder
    │   └── models.py      # ORM models (ledger + platform tables)
    ├── engine/
    │   └── policy.py      # Point policy resolver
    ├── services/
    │   ├── roster.py          # Group membership + attendance lookups
    │   ├── distributor.py     # Batch point distribution
    │   ├── attendance_points.py # Attendance status point adjustments
    │   ├── honor_service.py   # Honor award / update / delete
    │   ├── aggregation.py     # Leaderboards, reports, totals
    │   ├── settings_service.py # Per-organization point rules
    │   └── audit.py           # admin_log helpers
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine / config / context dependencies
        └── routes/        # Points + honors endpoints
"""

__version__ = "0.1.0"
