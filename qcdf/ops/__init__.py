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
"""Operations."""

from qcdf.ops.batch import quantize_pmf_batch
from qcdf.ops.cost import cross_entropy
from qcdf.ops.cost import entropy
from qcdf.ops.cost import relative_overhead
from qcdf.ops.errors import InfeasiblePrecisionError
from qcdf.ops.errors import InvalidArgumentError
from qcdf.ops.errors import MalformedPmfError
from qcdf.ops.fingerprint import array_fingerprint
from qcdf.ops.fingerprint import fingerprint64
from qcdf.ops.quantization import cdf_to_masses
from qcdf.ops.quantization import masses_to_cdf
from qcdf.ops.quantization import quantize_pmf
from qcdf.ops.quantization import quantize_pmf_to_cdf

__all__ = [
    "InfeasiblePrecisionError",
    "InvalidArgumentError",
    "MalformedPmfError",
    "array_fingerprint",
    "cdf_to_masses",
    "cross_entropy",
    "entropy",
    "fingerprint64",
    "masses_to_cdf",
    "quantize_pmf",
    "quantize_pmf_batch",
    "quantize_pmf_to_cdf",
    "relative_overhead",
]
