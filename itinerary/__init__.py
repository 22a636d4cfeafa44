"""
Itinerary — Accounts, Sessions & Game Jams Backend
===================================================
Authenticates community members through an external verification
handshake, keeps opaque session tokens, and runs timed game jams with
submissions, capped upvoting and community winner resolution.

Package layout::

    itinerary/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Shared constants + slug helper
    ├── errors.py          # Error taxonomy rendered by the API
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (users, sessions, jams, …)
    │   └── seed.py        # Bootstrap admins
    ├── engine/
    │   ├── sessions.py    # In-memory session store (write-through)
    │   ├── permissions.py # Role resolution
    │   ├── lifecycle.py   # Jam phases + mystery redaction
    │   ├── winners.py     # Community winner tally
    │   └── locks.py       # Keyed critical sections
    ├── services/
    │   ├── identity_service.py  # External auth + profile lookups
    │   ├── authz_service.py     # Manager lookups + role checks
    │   ├── user_service.py      # Profiles, bans, provisioning
    │   ├── jam_service.py       # Jams + managers
    │   ├── project_service.py   # Submissions + manual winners
    │   ├── upvote_service.py    # Upvote ledger
    │   └── winner_service.py    # Community winner persistence
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Auth handshake → session tokens
        └── routes/        # Users, jams, projects, upvotes, winners
"""

__version__ = "0.1.0"
