"""Soundwave - Utility modules."""

from soundwave.utils.atomic_io import SizeLimitExceeded, atomic_copy_file, atomic_write_chunks
from soundwave.utils.audio_meta import guess_format_from_url, is_audio_source
from soundwave.utils.paths import generated_filename, object_key, output_path, source_path
from soundwave.utils.waveform import reduce_waveform
from soundwave.utils.workspace import cleanup_stale_workspaces, job_workspace

__all__ = [
    # atomic_io
    "SizeLimitExceeded",
    "atomic_write_chunks",
    "atomic_copy_file",
    # audio_meta
    "guess_format_from_url",
    "is_audio_source",
    # paths
    "source_path",
    "output_path",
    "generated_filename",
    "object_key",
    # waveform
    "reduce_waveform",
    # workspace
    "job_workspace",
    "cleanup_stale_workspaces",
]
