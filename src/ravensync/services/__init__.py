"""Long-running services built on the sync engine.

Services are the top layer of the diamond DAG, depending on
[ravensync.engine][ravensync.engine], [ravensync.core][ravensync.core],
[ravensync.utils][ravensync.utils] and [ravensync.models][ravensync.models].
Each service extends [BaseService][ravensync.core.base_service.BaseService]
and implements ``async def run()`` for one cycle of work.

Attributes:
    ListenerService: Keeps the inbox open and periodically catches up known
        channels for one identity.

Examples:
    ```python
    from ravensync.services import ListenerService

    async with ListenerService() as service:
        await service.run()
    ```
"""

from .listener import ListenerConfig, ListenerService


__all__ = ["ListenerConfig", "ListenerService"]
