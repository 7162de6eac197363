"""
Upload plugin for remote trace ingestion.
"""
import json
import urllib.error
import urllib.request

import click

from stack_to_trace.exporters.sqlite import read_spans


def build_request(trace_id, spans, server_url, auth_token=None):
    payload = {"trace_id": trace_id, "spans": spans}
    data = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"
    return urllib.request.Request(server_url, data=data, headers=headers, method="POST")


def register(cli):
    """Register the 'upload' command to push traces to a remote server."""

    @cli.command(name="upload")
    @click.option("--db-file", required=True, type=click.Path(exists=True, dir_okay=False), help="Path to telemetry.db file")
    @click.option("--trace-id", "trace_id", required=True, help="Trace ID to upload")
    @click.option("--server-url", required=True, help="Remote server URL to POST traces")
    @click.option(
        "--auth-token", envvar="STACK_TO_TRACE_UPLOAD_TOKEN", default=None,
        help="Bearer token for authentication",
    )
    @click.option("--timeout", default=10, type=int, help="Request timeout in seconds")
    def upload(db_file, trace_id, server_url, auth_token, timeout):
        """Upload a stored trace to a remote server in JSON format."""
        spans = read_spans(db_file, trace_id)
        if not spans:
            raise click.ClickException(f"No spans found for trace {trace_id!r}")
        req = build_request(trace_id, spans, server_url, auth_token)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                click.echo(f"Uploaded trace {trace_id} ({len(spans)} spans): HTTP {resp.status}")
        except urllib.error.HTTPError as e:
            click.echo(f"HTTP error: {e.code} {e.reason}", err=True)
            raise SystemExit(1)
        except (urllib.error.URLError, OSError) as e:
            click.echo(f"Failed to upload: {e}", err=True)
            raise SystemExit(1)

    return upload
