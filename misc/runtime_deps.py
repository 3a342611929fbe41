from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # moderation
    moderation_service: Any
    actions: Any
    raid_tracker: Any
    exempt_channel_ids: set[int]
    user_is_owner: Callable[[Any], bool]

    # profiling
    enable_profiling: bool
    profile_service: Any


@dataclass(frozen=True)
class RuntimeBootDeps:
    cleanup_loop_func: Callable
