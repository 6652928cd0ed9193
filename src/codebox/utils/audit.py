# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import hashlib

from codebox.models import ExecutionRequest
from codebox.utils.logger import logger


class AuditLogger:
    """Audit trail of submitted code.

    Logs a hash of every submission before it runs, never the source itself.
    """

    def __init__(self, enabled: bool = True):
        """Initializes the AuditLogger.

        Args:
            enabled: Whether to emit audit records.
        """
        self.enabled = enabled

    async def log_pre_execution(self, request: ExecutionRequest) -> str:
        """Log the code execution attempt.

        Calculates a SHA-256 hash over the submitted sources (file names and
        contents for projects) and logs it if enabled.

        Args:
            request: The request about to run.

        Returns:
            str: The SHA-256 hash of the submission.
        """
        digest = hashlib.sha256()
        length = 0
        if request.files is None:
            source = (request.code or "").encode("utf-8")
            digest.update(source)
            length = len(source)
        else:
            for f in sorted(request.files, key=lambda f: f.name):
                content = f.content.encode("utf-8")
                digest.update(f.name.encode("utf-8") + b"\x00" + content + b"\x00")
                length += len(content)
        code_hash = digest.hexdigest()

        if self.enabled:
            logger.bind(project_id=request.project_id).info(
                f"AUDIT: Executing {request.language} code. Hash: {code_hash}, Length: {length}"
            )
        return code_hash
