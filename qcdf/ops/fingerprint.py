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
"""64-bit fingerprints of byte buffers and arrays."""

import hashlib

import numpy as np
from qcdf.ops import errors


def _as_bytes(data) -> bytes:
  if isinstance(data, np.ndarray):
    if data.dtype.hasobject:
      raise errors.InvalidArgumentError(
          f"Data type not supported: {data.dtype}")
    return np.ascontiguousarray(data).tobytes()
  return memoryview(data).tobytes()


def fingerprint64(data) -> int:
  """Returns a 64-bit unsigned fingerprint of `data`.

  The fingerprint is the 8-byte BLAKE2b digest read as a little-endian integer.
  It depends only on the bytes, so arrays with equal contents and dtype but
  different memory layouts have equal fingerprints.

  Args:
    data: A bytes-like object or a NumPy array.

  Returns:
    An integer in [0, 2**64).
  """
  digest = hashlib.blake2b(_as_bytes(data), digest_size=8).digest()
  return int.from_bytes(digest, "little")


def array_fingerprint(array) -> np.int64:
  """Returns the fingerprint of an array's bytes as a signed 64-bit integer."""
  value = fingerprint64(np.asarray(array))
  return np.asarray(value, dtype=np.uint64).view(np.int64)[()]
