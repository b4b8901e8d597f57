"""Transport envelopes for provider user-data size limits."""

import base64
import gzip

MIME_BOUNDARY = "MIMEBOUNDARY"


def _gzip_b64(script: str) -> str:
    return base64.b64encode(gzip.compress(script.encode("utf-8"), mtime=0)).decode("ascii")


def compress_script(script: str) -> str:
    """Self-extracting bash wrapper around a gzip+base64 payload."""
    return (
        "#!/bin/bash\n"
        "base64 -d <<'COMPRESSED_PAYLOAD' | gunzip | bash\n"
        f"{_gzip_b64(script)}\n"
        "COMPRESSED_PAYLOAD\n"
    )


def compress_mime(script: str) -> str:
    """cloud-init multipart envelope with a gzip+base64 shell script attachment."""
    return (
        f'Content-Type: multipart/mixed; boundary="{MIME_BOUNDARY}"\n'
        "MIME-Version: 1.0\n"
        "\n"
        f"--{MIME_BOUNDARY}\n"
        'Content-Type: text/x-shellscript; charset="utf-8"\n'
        "Content-Transfer-Encoding: base64\n"
        'Content-Disposition: attachment; filename="cloud-init.sh"\n'
        "\n"
        f"{_gzip_b64(script)}\n"
        f"--{MIME_BOUNDARY}--\n"
    )
