"""Spec-results workbook reporter fed by reporting channel events."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from app_test_orchestrator.configuration.runtime_settings import RunConfig
from app_test_orchestrator.reporting_channel import (
    ChannelEvent,
    ReportingChannel,
    ReportingChannelError,
    Subscription,
    failed_spec_count,
)

from .report_models import RunMetadata, SpecRecord, SpecStatus

logger = logging.getLogger(__name__)

SPECS_SHEET_NAME = "Specs"
RUN_INFO_SHEET_NAME = "RunInfo"
SPEC_COLUMNS = ("Suite", "Spec", "Status", "Failed expectations")
RESULTS_FILENAME = "spec-results-{timestamp}.xlsx"


def write_spec_results_workbook(
    output_path: Path | str,
    records: Sequence[SpecRecord],
    run_metadata: RunMetadata,
) -> Path:
    """Write one row per spec plus a RunInfo sheet."""
    workbook = Workbook()
    sheet = workbook.active
    assert sheet is not None
    sheet.title = SPECS_SHEET_NAME
    for column, header in enumerate(SPEC_COLUMNS, start=1):
        sheet.cell(row=1, column=column, value=header)
        sheet.cell(row=1, column=column).style = "Headline 1"
    for row, record in enumerate(records, start=2):
        sheet.cell(row=row, column=1, value=record.suite)
        sheet.cell(row=row, column=2, value=record.description)
        sheet.cell(row=row, column=3, value=record.status.value)
        sheet.cell(row=row, column=4, value="\n".join(record.failed_expectations))
    for column, width in enumerate((40, 60, 12, 80), start=1):
        sheet.column_dimensions[get_column_letter(column)].width = width

    _write_run_info_sheet(workbook, records, run_metadata)

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(output)
    return output


def _write_run_info_sheet(
    workbook: Workbook, records: Sequence[SpecRecord], run_metadata: RunMetadata
) -> None:
    sheet = workbook.create_sheet(RUN_INFO_SHEET_NAME)
    entries = (
        ("run_start", run_metadata.run_start.isoformat()),
        ("platform", run_metadata.platform),
        ("action", run_metadata.action),
        ("plugins", ", ".join(run_metadata.plugins)),
        ("total", len(records)),
        ("passed", sum(1 for record in records if record.status is SpecStatus.PASSED)),
        ("failed", sum(1 for record in records if record.status is SpecStatus.FAILED)),
        ("reported_failed", run_metadata.spec_failed),
    )
    for row, (key, value) in enumerate(entries, start=1):
        sheet.cell(row=row, column=1, value=key)
        sheet.cell(row=row, column=2, value=value)


class SpecResultsCollector:
    """Collects ``specDone`` records and writes the workbook on ``jasmineDone``."""

    def __init__(self, config: RunConfig, output_dir: Path) -> None:
        self._config = config
        self._output_dir = output_dir
        self._run_start = datetime.now(UTC)
        self._records: list[SpecRecord] = []
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self.written_path: Path | None = None

    @property
    def records(self) -> tuple[SpecRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def attach(self, channel: ReportingChannel) -> SpecResultsCollector:
        self._subscriptions = [
            channel.on(ChannelEvent.SPEC_DONE, self._on_spec_done),
            channel.on(ChannelEvent.JASMINE_DONE, self._on_done),
        ]
        return self

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

    def _on_spec_done(self, payload) -> None:
        with self._lock:
            self._records.append(SpecRecord.from_payload(payload))

    def _on_done(self, payload) -> None:
        try:
            spec_failed: int | None = failed_spec_count(payload)
        except ReportingChannelError:
            spec_failed = None
        timestamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
        output_path = self._output_dir / RESULTS_FILENAME.format(timestamp=timestamp)
        self.written_path = write_spec_results_workbook(
            output_path,
            self.records,
            RunMetadata(
                run_start=self._run_start,
                platform=self._config.platform.value,
                action=self._config.action.value,
                plugins=self._config.plugins,
                spec_failed=spec_failed,
            ),
        )
        logger.info("Spec results written to %s", self.written_path)
