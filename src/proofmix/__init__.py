"""
proofmix - Social Proof Notification Admission, Sequencing & Blending

Decides, per page view, whether a social-proof notification may be shown,
which campaign it comes from, and whether the event is a natural one or a
quick-win filler. Widgets graduate from quick-win heavy blending to a
natural-event majority once enough natural events perform well.

Usage as library:
    from proofmix.services.admission import AdmissionEngine
    from proofmix.models import PageContext, PoolSnapshot, SessionState

    engine = AdmissionEngine(rng=random.Random(42))
    result = engine.evaluate(snapshot, session, context)
    if result.selection:
        engine.confirm(result, session)

Usage as CLI:
    python -m proofmix evaluate --rules rules.json --context context.json
    python -m proofmix simulate --snapshot snapshot.json --cycles 50
    python -m proofmix graduation status --widget widget-1

Package structure:
    proofmix/
    ├── core/           # Settings, logging, retry, formatting
    ├── models/         # Domain records and report models
    ├── services/
    │   ├── admission/  # Rules, throttle, playlists, blending
    │   ├── event_store/ # SQLite storage
    │   └── graduation/ # Analytics, controller, scheduler
    └── commands/       # CLI command implementations
"""

__version__ = "1.0.0"
