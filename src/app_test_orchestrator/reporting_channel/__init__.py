"""Reporting channel exports."""

from .channel_events import (
    LIFECYCLE_EVENTS,
    ChannelEvent,
    ReportingChannelError,
    failed_spec_count,
)
from .file_transfer_server import (
    FileTransferServer,
    FileTransferServerError,
    needs_file_transfer_server,
    start_file_transfer_server,
)
from .local_channel import (
    ReportingChannel,
    Subscription,
    create_channel_app,
    start_reporting_channel,
)

__all__ = [
    "ChannelEvent",
    "FileTransferServer",
    "FileTransferServerError",
    "LIFECYCLE_EVENTS",
    "ReportingChannel",
    "ReportingChannelError",
    "Subscription",
    "create_channel_app",
    "failed_spec_count",
    "needs_file_transfer_server",
    "start_file_transfer_server",
    "start_reporting_channel",
]
