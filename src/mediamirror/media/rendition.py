"""
Adaptive-bitrate rendition job builder.

Turns an uploaded source video key into the description of a MediaConvert HLS
job: three H.264 video renditions (1080p/720p/480p) and one AAC audio-only
rendition, all written as segmented HLS into one destination directory.

Every encoding parameter is a constant of the ladder. Equal inputs produce
byte-identical job descriptions, so a redelivered job re-submits exactly the
same request.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

HLS_SEGMENT_SECONDS = 6
KEYFRAME_INTERVAL_SECONDS = 2
B_FRAMES = 2

AUDIO_BITRATE = 96_000
AUDIO_SAMPLE_RATE = 48_000
AUDIO_NAME_MODIFIER = "_audio"


@dataclass(frozen=True)
class VideoRendition:
    """One rung of the video ladder."""

    width: int
    height: int
    bitrate: int  # bits per second

    @property
    def name_modifier(self) -> str:
        return f"_{self.height}p"

    def to_output(self) -> dict[str, Any]:
        return {
            "VideoDescription": {
                "CodecSettings": {
                    "Codec": "H_264",
                    "H264Settings": {
                        "Bitrate": self.bitrate,
                        "RateControlMode": "CBR",
                        "CodecLevel": "AUTO",
                        "CodecProfile": "MAIN",
                        "GopSize": KEYFRAME_INTERVAL_SECONDS,
                        "GopSizeUnits": "SECONDS",
                        "NumberBFramesBetweenReferenceFrames": B_FRAMES,
                        "AdaptiveQuantization": "HIGH",
                        "SceneChangeDetect": "TRANSITION_DETECTION",
                    },
                },
                "Width": self.width,
                "Height": self.height,
            },
            "ContainerSettings": {"Container": "M3U8"},
            "NameModifier": self.name_modifier,
        }


@dataclass(frozen=True)
class AudioRendition:
    """The audio-only rendition carried alongside the video ladder."""

    bitrate: int = AUDIO_BITRATE
    sample_rate: int = AUDIO_SAMPLE_RATE
    coding_mode: str = "CODING_MODE_2_0"
    name_modifier: str = AUDIO_NAME_MODIFIER

    def to_output(self) -> dict[str, Any]:
        return {
            "AudioDescriptions": [
                {
                    "CodecSettings": {
                        "Codec": "AAC",
                        "AacSettings": {
                            "Bitrate": self.bitrate,
                            "CodingMode": self.coding_mode,
                            "SampleRate": self.sample_rate,
                        },
                    }
                }
            ],
            "ContainerSettings": {"Container": "M3U8"},
            "NameModifier": self.name_modifier,
        }


VIDEO_LADDER: tuple[VideoRendition, ...] = (
    VideoRendition(width=1920, height=1080, bitrate=5_000_000),
    VideoRendition(width=1280, height=720, bitrate=3_000_000),
    VideoRendition(width=854, height=480, bitrate=1_200_000),
)

AUDIO_RENDITION = AudioRendition()


@dataclass(frozen=True)
class RenditionJobSpec:
    """
    Immutable description of one HLS transcode job.

    Keys are bucket-relative; the bucket and the encoder's IAM role are only
    attached when the request is rendered for submission.
    """

    input_key: str
    destination_prefix: str
    video: tuple[VideoRendition, ...]
    audio: AudioRendition

    @property
    def outputs(self) -> tuple[VideoRendition | AudioRendition, ...]:
        """All outputs in submission order: video ladder, then audio."""
        return (*self.video, self.audio)

    def to_settings(self, bucket: str) -> dict[str, Any]:
        return {
            "TimecodeConfig": {"Source": "ZEROBASED"},
            "Inputs": [
                {
                    "FileInput": f"s3://{bucket}/{self.input_key}",
                    "AudioSelectors": {"Audio Selector 1": {"DefaultSelection": "DEFAULT"}},
                    "VideoSelector": {},
                }
            ],
            "OutputGroups": [
                {
                    "Name": "HLS Group",
                    "OutputGroupSettings": {
                        "Type": "HLS_GROUP_SETTINGS",
                        "HlsGroupSettings": {
                            "Destination": f"s3://{bucket}/{self.destination_prefix}",
                            "SegmentLength": HLS_SEGMENT_SECONDS,
                            "MinSegmentLength": 0,
                            "ManifestDurationFormat": "INTEGER",
                            "CodecSpecification": "RFC_4281",
                            "DirectoryStructure": "SINGLE_DIRECTORY",
                            "ManifestCompression": "NONE",
                            "ClientCache": "ENABLED",
                        },
                    },
                    "Outputs": [output.to_output() for output in self.outputs],
                }
            ],
        }

    def to_create_job_request(self, bucket: str, role_arn: str) -> dict[str, Any]:
        """Keyword arguments for `mediaconvert.create_job(**request)`."""
        return {"Role": role_arn, "Settings": self.to_settings(bucket)}

    def to_json(self, bucket: str = "{bucket}") -> str:
        """Canonical JSON rendering (sorted keys, no whitespace)."""
        return json.dumps(self.to_settings(bucket), sort_keys=True, separators=(",", ":"))


def build_rendition_job(source_key: str, destination_prefix: str) -> RenditionJobSpec:
    """
    Build the HLS job description for an uploaded source video.

    Args:
        source_key: Bucket-relative key of the original video
        destination_prefix: Bucket-relative directory for all HLS outputs;
            a trailing slash is added if missing

    Returns:
        RenditionJobSpec with the fixed 1080p/720p/480p ladder plus audio
    """
    prefix = destination_prefix if destination_prefix.endswith("/") else f"{destination_prefix}/"
    return RenditionJobSpec(
        input_key=source_key.lstrip("/"),
        destination_prefix=prefix.lstrip("/"),
        video=VIDEO_LADDER,
        audio=AUDIO_RENDITION,
    )
