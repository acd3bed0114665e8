import asyncio
import dataclasses
from typing import Awaitable, Callable, Generic, TypeVar

from imgserve.typing import CacheKey

T = TypeVar('T')


@dataclasses.dataclass
class Call(Generic[T]):
  task: asyncio.Task[T]
  waiters: int = 0


class InFlight(Generic[T]):
  """Per-key single-flight for concurrent cache misses.

  Callers asking for a key that is already being computed await the running
  task instead of starting another one. A caller that goes away only cancels
  the computation when nobody else is waiting for it.
  """

  def __init__(self) -> None:
    self.calls: dict[CacheKey, Call[T]] = {}

  def __len__(self) -> int:
    return len(self.calls)

  def forget(self, key: CacheKey, call: Call[T]) -> None:
    if self.calls.get(key) is call:
      del self.calls[key]

  async def run(self, key: CacheKey, factory: Callable[[], Awaitable[T]]) -> T:
    call = self.calls.get(key)
    if call is None:
      call = Call(asyncio.ensure_future(factory()))
      self.calls[key] = call
      call.task.add_done_callback(lambda _, c=call: self.forget(key, c))

    call.waiters += 1
    try:
      return await asyncio.shield(call.task)
    except asyncio.CancelledError:
      if call.waiters == 1 and not call.task.done():
        call.task.cancel()
      raise
    finally:
      call.waiters -= 1
