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
"""Errors raised by quantization operations."""


class InvalidArgumentError(ValueError):
  """Precision or pmf shape is invalid. Raised before any row is processed."""


class MalformedPmfError(InvalidArgumentError):
  """Pmf contains a negative, NaN or infinite entry."""


class InfeasiblePrecisionError(ValueError):
  """Quantized masses cannot be all positive and sum to `2**precision`.

  This happens when the alphabet size exceeds the normalizer, i.e.
  `pmf.shape[-1] > 2**precision`.
  """
