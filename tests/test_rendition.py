"""
Tests for the HLS rendition job builder.
"""

import json

from mediamirror.media.rendition import (
    AUDIO_RENDITION,
    VIDEO_LADDER,
    RenditionJobSpec,
    build_rendition_job,
)


class TestBuildRenditionJob:
    """Tests for build_rendition_job()."""

    def test_ladder_shape(self):
        spec = build_rendition_job("0 US/bob/clips/run.mov", "0 US/bob/clips/outputs/run/")
        assert isinstance(spec, RenditionJobSpec)
        assert len(spec.outputs) == 4
        assert [v.height for v in spec.video] == [1080, 720, 480]
        assert [v.bitrate for v in spec.video] == [5_000_000, 3_000_000, 1_200_000]
        assert spec.audio is AUDIO_RENDITION

    def test_destination_gets_trailing_slash(self):
        spec = build_rendition_job("/v/a.mp4", "v/outputs/a")
        assert spec.input_key == "v/a.mp4"
        assert spec.destination_prefix == "v/outputs/a/"

    def test_equal_inputs_render_identically(self):
        first = build_rendition_job("v/a.mp4", "v/outputs/a/")
        second = build_rendition_job("v/a.mp4", "v/outputs/a/")
        assert first == second
        assert first.to_json("bucket") == second.to_json("bucket")

    def test_to_json_is_canonical(self):
        rendered = build_rendition_job("v/a.mp4", "v/outputs/a/").to_json("bucket")
        parsed = json.loads(rendered)
        assert json.dumps(parsed, sort_keys=True, separators=(",", ":")) == rendered


class TestCreateJobRequest:
    """Tests for the rendered MediaConvert request."""

    def setup_method(self):
        spec = build_rendition_job("0 US/bob/clips/run.mov", "0 US/bob/clips/outputs/run/")
        self.request = spec.to_create_job_request("media-bucket", "arn:aws:iam::1:role/mc")
        self.group = self.request["Settings"]["OutputGroups"][0]

    def test_role_and_input(self):
        assert self.request["Role"] == "arn:aws:iam::1:role/mc"
        file_input = self.request["Settings"]["Inputs"][0]["FileInput"]
        assert file_input == "s3://media-bucket/0 US/bob/clips/run.mov"

    def test_hls_group_settings(self):
        hls = self.group["OutputGroupSettings"]["HlsGroupSettings"]
        assert self.group["OutputGroupSettings"]["Type"] == "HLS_GROUP_SETTINGS"
        assert hls["Destination"] == "s3://media-bucket/0 US/bob/clips/outputs/run/"
        assert hls["SegmentLength"] == 6
        assert hls["MinSegmentLength"] == 0
        assert hls["ManifestDurationFormat"] == "INTEGER"
        assert hls["CodecSpecification"] == "RFC_4281"
        assert hls["DirectoryStructure"] == "SINGLE_DIRECTORY"
        assert hls["ManifestCompression"] == "NONE"
        assert hls["ClientCache"] == "ENABLED"

    def test_video_outputs(self):
        outputs = self.group["Outputs"]
        assert [o["NameModifier"] for o in outputs] == ["_1080p", "_720p", "_480p", "_audio"]
        for output, rung in zip(outputs[:3], VIDEO_LADDER):
            video = output["VideoDescription"]
            h264 = video["CodecSettings"]["H264Settings"]
            assert video["CodecSettings"]["Codec"] == "H_264"
            assert (video["Width"], video["Height"]) == (rung.width, rung.height)
            assert h264["Bitrate"] == rung.bitrate
            assert h264["RateControlMode"] == "CBR"
            assert h264["CodecProfile"] == "MAIN"
            assert h264["GopSize"] == 2
            assert h264["GopSizeUnits"] == "SECONDS"
            assert h264["NumberBFramesBetweenReferenceFrames"] == 2
            assert h264["AdaptiveQuantization"] == "HIGH"
            assert h264["SceneChangeDetect"] == "TRANSITION_DETECTION"
            assert "MaxBitrate" not in h264
            assert output["ContainerSettings"]["Container"] == "M3U8"

    def test_audio_output(self):
        audio = self.group["Outputs"][3]
        aac = audio["AudioDescriptions"][0]["CodecSettings"]["AacSettings"]
        assert aac == {"Bitrate": 96_000, "CodingMode": "CODING_MODE_2_0", "SampleRate": 48_000}
        assert "VideoDescription" not in audio
