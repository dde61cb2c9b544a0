# Copyright 2024 qcdf authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""Greedy single-unit corrections of quantized probability masses.

After rounding, the quantized masses of a pmf rarely sum to the normalizer.
The correction queue moves the sum to the normalizer one unit at a time, each
time choosing the symbol whose adjustment costs the fewest bits. With the pmf
weight `w` and current quantized mass `v` of a symbol:

- decrementing `v` costs `w * log2(v / (v - 1))` bits (the penalty), and
- incrementing `v` saves `w * log2((v + 1) / v)` bits (the gain).

Both are monotonic in `v`, so the greedy choice is optimal for a fixed number of
unit moves.
"""

from __future__ import annotations

import bisect
from collections.abc import Sequence
import dataclasses
import math

import numpy as np
from qcdf.ops import errors

# Correction directions. The value is added to a mass on each step.
SURPLUS = -1
DEFICIT = 1


def decrement_penalty(weight: float, count: int) -> float:
  """Returns the bits lost by decrementing `count` by one.

  Args:
    weight: Pmf value of the symbol. This is the original probability, not the
      quantized mass.
    count: Current quantized mass of the symbol.

  Returns:
    `weight * (log2(count) - log2(count - 1))`, or `inf` when `count <= 1`.
  """
  if count <= 1:
    return math.inf
  return weight * (math.log2(count) - math.log2(count - 1))


def increment_gain(weight: float, count: int) -> float:
  """Returns the bits saved by incrementing `count` by one.

  Args:
    weight: Pmf value of the symbol.
    count: Current quantized mass of the symbol.

  Returns:
    `weight * (log2(count + 1) - log2(count))`, or `-inf` when `count < 1`.
  """
  # Never increment zero value to non-zero value.
  if count < 1:
    return -math.inf
  return weight * (math.log2(count + 1) - math.log2(count))


@dataclasses.dataclass
class CorrectionItem:
  """A symbol waiting in the correction queue."""
  index: int  # Position in the mass array.
  weight: float
  score: float


class CorrectionQueue:
  """Ordered correction candidates over a shared mass array.

  The queue holds one item per symbol. The front item always has the best
  score: the lowest penalty for `SURPLUS`, the highest gain for `DEFICIT`. Each
  step adjusts the mass of the front item by one unit, recomputes its score and
  moves it back into position. Only one score changes per step, so the item
  usually lands close to the front.

  Among items with equal scores the one that entered its position first stays
  in front. This tie-break is an artifact of the ordering and not a contract.
  """

  def __init__(self,
               qmf: np.ndarray,
               weights: Sequence[float] | np.ndarray,
               direction: int):
    """Initializes the queue.

    Args:
      qmf: 1-D integer array of quantized masses. Updated in place by `step()`.
      weights: Pmf values, one per entry of `qmf`.
      direction: `SURPLUS` to remove units, `DEFICIT` to add units.
    """
    if direction not in (SURPLUS, DEFICIT):
      raise ValueError(f"`direction` must be {SURPLUS} or {DEFICIT}: "
                       f"{direction}")
    if len(weights) != len(qmf):
      raise ValueError(
          f"Size mismatch: {len(weights)} weights for {len(qmf)} masses.")

    self._qmf = qmf
    self._direction = direction
    items = [
        CorrectionItem(index, float(weight), self._score(float(weight), mass))
        for index, (weight, mass) in enumerate(zip(weights, qmf.tolist()))
    ]
    items.sort(key=self._key)
    self._items = items
    self._keys = [self._key(item) for item in items]

  def __len__(self) -> int:
    return len(self._items)

  @property
  def direction(self) -> int:
    return self._direction

  @property
  def front(self) -> CorrectionItem:
    """The item with the best score."""
    return self._items[0]

  def _score(self, weight: float, count: int) -> float:
    if self._direction == SURPLUS:
      return decrement_penalty(weight, count)
    return increment_gain(weight, count)

  def _key(self, item: CorrectionItem) -> float:
    # Smallest key first.
    return item.score if self._direction == SURPLUS else -item.score

  def step(self) -> int:
    """Applies one unit of correction to the front item.

    Returns:
      Index of the adjusted symbol in the mass array.

    Raises:
      InfeasiblePrecisionError: Every remaining mass is already 1 and cannot be
        decremented.
      ValueError: Every mass is zero and cannot be incremented.
    """
    item = self._items[0]
    if self._direction == SURPLUS and item.score == math.inf:
      raise errors.InfeasiblePrecisionError(
          f"Cannot remove a unit: all {len(self)} masses are 1.")
    if item.score == -math.inf:
      raise ValueError("Cannot add a unit: all masses are zero.")

    count = int(self._qmf[item.index]) + self._direction
    self._qmf[item.index] = count
    item.score = self._score(item.weight, count)

    del self._items[0]
    del self._keys[0]
    key = self._key(item)
    position = bisect.bisect_right(self._keys, key)
    self._items.insert(position, item)
    self._keys.insert(position, key)
    return item.index

  def run(self, num_steps: int) -> None:
    """Applies `num_steps` units of correction."""
    for _ in range(num_steps):
      self.step()
