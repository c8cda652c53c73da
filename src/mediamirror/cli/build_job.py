"""
mediamirror build-job - Print the HLS job for a source video.

Pure: needs no configuration and makes no calls.
"""

import json

import typer

from mediamirror.media.classifier import hls_output_prefix
from mediamirror.media.rendition import build_rendition_job

app = typer.Typer(name="build-job", help="Print the HLS transcode job for a video key", invoke_without_command=True)


@app.callback()
def build_job(
    ctx: typer.Context,
    source_key: str = typer.Argument(..., help="Bucket-relative key of the source video"),
    destination_prefix: str | None = typer.Option(
        None, "--destination", help="Output directory (default: {dir}/outputs/{name}/)"
    ),
    bucket: str = typer.Option("{bucket}", "--bucket", help="Bucket to render into the S3 URIs"),
    role_arn: str | None = typer.Option(None, "--role-arn", help="Render a full CreateJob request with this role"),
) -> None:
    """
    Print the MediaConvert job description as JSON.
    """
    if ctx.invoked_subcommand is not None:
        return

    spec = build_rendition_job(source_key, destination_prefix or hls_output_prefix(source_key.lstrip("/")))
    if role_arn:
        typer.echo(json.dumps(spec.to_create_job_request(bucket, role_arn), indent=2, sort_keys=True))
    else:
        typer.echo(spec.to_json(bucket))
