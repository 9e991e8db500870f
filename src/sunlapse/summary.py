"""End-of-day summary pipeline for Sunlapse.

At dusk each completed day goes through three steps in order: encode the
timelapse video, archive the images, delete the images. A failed encode or
archive stops the chain so the images stay on disk for manual recovery.
Nothing is retried.
"""

import subprocess
import tarfile
import threading
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Optional

from sunlapse.config import VideoConfig
from sunlapse.handoff import HandoffQueue
from sunlapse.logger import get_logger, with_fields
from sunlapse.remote import RemoteError, RemoteStore
from sunlapse.storage import ImageStorage, StorageError, date_key

logger = get_logger(__name__)


class SummaryError(Exception):
    """Base exception for summary pipeline errors."""

    pass


class VideoError(SummaryError):
    """Exception raised when the timelapse video cannot be encoded."""

    pass


class ArchiveError(SummaryError):
    """Exception raised when the image archive cannot be created."""

    pass


class DeleteError(SummaryError):
    """Exception raised when the day's images cannot be deleted."""

    pass


class PipelineOutcome(Enum):
    """Result of one summary job."""

    VIDEO_FAILED = "video_failed"
    ARCHIVE_FAILED = "archive_failed"
    DELETE_FAILED = "delete_failed"
    SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class SummaryJob:
    """A completed day waiting to be summarized."""

    date: date


def encode_video(
    storage: ImageStorage,
    day: date,
    config: Optional[VideoConfig] = None,
) -> Path:
    """Encode the day's images into a timelapse video with ffmpeg.

    Args:
        storage: Image storage.
        day: Date whose images are encoded.
        config: Encoding parameters. Defaults to VideoConfig().

    Returns:
        Path to the video.

    Raises:
        VideoError: If ffmpeg is missing or exits non-zero.
    """
    if config is None:
        config = VideoConfig()

    output = storage.video_path(day)
    cmd = [
        config.ffmpeg,
        "-y",
        "-f", "image2",
        "-i", storage.image_pattern(day),
        "-r", str(config.framerate),
        "-q:v", str(config.quality),
        "-pix_fmt", config.pix_fmt,
        "-vcodec", config.codec,
        str(output),
    ]
    log = with_fields(logger, date=date_key(day), command=config.ffmpeg, args=cmd[1:])

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        raise VideoError(f"{config.ffmpeg} not found. Install with: sudo apt install ffmpeg")
    except OSError as e:
        raise VideoError(f"Cannot run {config.ffmpeg}: {e}") from e

    if result.returncode != 0:
        log.error(result.stderr)
        log.debug(result.stdout)
        raise VideoError(f"ffmpeg exited with code {result.returncode}")

    log.debug(result.stderr)
    log.debug(result.stdout)
    return output


def archive_images(storage: ImageStorage, day: date) -> int:
    """Pack the day's images into a gzipped tar archive.

    Files that cannot be read or added are skipped and the rest are still
    archived.

    Args:
        storage: Image storage.
        day: Date whose images are archived.

    Returns:
        Number of files written to the archive.

    Raises:
        ArchiveError: If the image directory cannot be listed or the archive
            cannot be opened or finalized.
    """
    log = with_fields(logger, date=date_key(day), dir=storage.day_path(day))

    try:
        entries = storage.list_day_files(day)
    except StorageError as e:
        raise ArchiveError(str(e)) from e

    archive_path = storage.archive_path(day)
    try:
        archive = tarfile.open(archive_path, "w:gz")
    except OSError as e:
        raise ArchiveError(f"Error creating archive {archive_path}: {e}") from e

    archived = 0
    try:
        with archive:
            for path in entries:
                if not path.is_file():
                    log.debug(f"Skipping non-file entry {path.name}")
                    continue
                try:
                    info = archive.gettarinfo(str(path), arcname=path.name)
                    with open(path, "rb") as f:
                        archive.addfile(info, f)
                except OSError as e:
                    log.error(f"Skipping {path.name}: {e}")
                    continue
                archived += 1
    except OSError as e:
        raise ArchiveError(f"Error writing archive {archive_path}: {e}") from e

    log.info(f"Archived {archived} of {len(entries)} files to {archive_path}")
    return archived


def delete_images(storage: ImageStorage, day: date) -> None:
    """Remove the day's image directory.

    Raises:
        DeleteError: If the directory cannot be removed.
    """
    try:
        storage.remove_day_directory(day)
    except StorageError as e:
        raise DeleteError(str(e)) from e


def run_summary(
    job: SummaryJob,
    storage: ImageStorage,
    video_config: Optional[VideoConfig] = None,
) -> PipelineOutcome:
    """Run encode -> archive -> delete for one day, stopping at the first failure.

    Args:
        job: Day to summarize.
        storage: Image storage.
        video_config: Encoding parameters.

    Returns:
        The PipelineOutcome of the run.
    """
    log = with_fields(logger, date=date_key(job.date))

    log.info("Creating video")
    try:
        encode_video(storage, job.date, video_config)
    except VideoError as e:
        log.error(f"Error creating video: {e}")
        return PipelineOutcome.VIDEO_FAILED

    log.info("Creating image archive")
    try:
        archive_images(storage, job.date)
    except ArchiveError as e:
        log.error(f"Error creating image archive: {e}")
        return PipelineOutcome.ARCHIVE_FAILED

    log.info("Deleting images")
    try:
        delete_images(storage, job.date)
    except DeleteError as e:
        log.error(f"Error deleting images: {e}")
        return PipelineOutcome.DELETE_FAILED

    return PipelineOutcome.SUCCEEDED


class SummaryPipeline:
    """Worker thread that summarizes handed-off days one at a time."""

    # Seconds between stop-flag checks while idle
    POLL_INTERVAL = 0.5

    def __init__(
        self,
        storage: ImageStorage,
        handoff: HandoffQueue,
        video_config: Optional[VideoConfig] = None,
        remote: Optional[RemoteStore] = None,
    ):
        """Initialize the pipeline.

        Args:
            storage: Image storage.
            handoff: Queue the capture loop hands SummaryJobs through.
            video_config: Encoding parameters.
            remote: Optional remote store that receives finished artifacts.
        """
        self.storage = storage
        self.handoff = handoff
        self.video_config = video_config
        self.remote = remote
        self.current_job: Optional[SummaryJob] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the worker thread."""
        if self.is_running():
            logger.warning("Summary pipeline already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="summary-pipeline", daemon=True
        )
        self._thread.start()
        logger.info("Summary pipeline started")

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the worker to stop without draining an in-flight job."""
        self._stop_event.set()
        job = self.current_job
        if job is not None:
            logger.warning(
                f"Stopping while summary for {date_key(job.date)} is in progress; "
                f"rerun with 'sunlapse summarize {date_key(job.date)}'"
            )
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Summary pipeline stopped")

    def is_running(self) -> bool:
        """Check if the worker thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            job = self.handoff.get(timeout=self.POLL_INTERVAL)
            if job is None:
                continue
            try:
                self.process(job)
            except Exception as e:
                logger.error(f"Unexpected error summarizing {date_key(job.date)}: {e}")

    def process(self, job: SummaryJob) -> PipelineOutcome:
        """Summarize one day and publish its artifacts if a remote is attached."""
        self.current_job = job
        try:
            outcome = run_summary(job, self.storage, self.video_config)
            logger.info(f"Summary for {date_key(job.date)} finished: {outcome.value}")
            if outcome is PipelineOutcome.SUCCEEDED and self.remote is not None:
                self._publish(job)
            return outcome
        finally:
            self.current_job = None

    def _publish(self, job: SummaryJob) -> None:
        key = date_key(job.date)
        try:
            self.remote.create_directory(key)
            self.remote.upload(
                [self.storage.video_path(job.date), self.storage.archive_path(job.date)],
                key,
            )
        except RemoteError as e:
            logger.error(f"Error uploading summary for {key}: {e}")
