"""Quantizes pmfs stored in a `.npy` file into CDFs for entropy coding."""

from absl import app
from absl import flags
from ml_collections import config_flags

import quantize_lib

config_flags.DEFINE_config_file("config")
flags.DEFINE_string(
    "input_path", None,
    "`.npy` file with a float array of pmfs, symbols along the last axis.")
flags.DEFINE_string(
    "output_path", None,
    "`.npy` file to write the int32 array of quantized CDFs to.")
flags.mark_flags_as_required(["config", "input_path", "output_path"])

FLAGS = flags.FLAGS


def main(_):
  quantize_lib.run(FLAGS.config, FLAGS.input_path, FLAGS.output_path)


if __name__ == "__main__":
  app.run(main)
