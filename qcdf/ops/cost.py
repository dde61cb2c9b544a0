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
"""Coding cost of quantized distributions."""

import numpy as np


def _normalize(x):
  x = np.asarray(x, dtype=np.float64)
  return x / x.sum(axis=-1, keepdims=True)


def entropy(pmf) -> np.ndarray:
  """Shannon entropy in bits of the normalized pmf, along the last axis."""
  p = _normalize(pmf)
  logp = np.log2(np.where(p > 0, p, 1))
  return -np.sum(p * logp, axis=-1)


def cross_entropy(pmf, qmf) -> np.ndarray:
  """Expected code length in bits of `pmf` symbols coded with `qmf`.

  Args:
    pmf: Probability mass function, shape `(..., n)`.
    qmf: Quantized masses of the same shape, e.g. from `quantize_pmf()`.

  Returns:
    `-sum(p * log2(q))` along the last axis, where `p` and `q` are the
    normalized `pmf` and `qmf`. Infinite if some `q` is zero where `p` is not.
  """
  p = _normalize(pmf)
  q = _normalize(qmf)
  with np.errstate(divide="ignore", invalid="ignore"):
    return -np.sum(np.where(p > 0, p * np.log2(q), 0), axis=-1)


def relative_overhead(pmf, qmf) -> np.ndarray:
  """Relative excess code length `(cross_entropy - entropy) / entropy`."""
  h = np.asarray(entropy(pmf))
  excess = np.asarray(cross_entropy(pmf, qmf) - h)
  # A deterministic pmf has zero entropy; any excess is then infinitely large.
  out = np.where(excess > 0, np.inf, 0.)
  return np.divide(excess, h, out=out, where=h > 0)
