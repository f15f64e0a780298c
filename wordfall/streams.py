from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, cast

import redis

# Cap per-session outcome logs; a long game produces one entry per word.
SESSION_STREAM_MAXLEN = 1_000


@dataclass(frozen=True, slots=True)
class SessionStream:
    session_id: str

    @property
    def key(self) -> str:
        return f"wordfall:session:{self.session_id}:events"


def publish_to_session(*, r: redis.Redis, stream: SessionStream, fields: Mapping[str, str]) -> str:
    """Append an entry to a session's outcome stream."""

    # redis-py stubs expect field/value unions; we only use string fields/values.
    stream_id = r.xadd(
        stream.key,
        {str(k): str(v) for k, v in fields.items()},
        maxlen=SESSION_STREAM_MAXLEN,
        approximate=True,
    )
    return cast(str, stream_id)


def read_session(*, r: redis.Redis, stream: SessionStream, count: int = 50) -> list[dict[str, object]]:
    entries = r.xrange(stream.key, min="-", max="+", count=count)
    return [{"id": mid, "fields": fields} for mid, fields in entries]
