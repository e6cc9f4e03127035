"""
Unit tests for the student service.
"""

import asyncio
from uuid import UUID

import pytest

from scaffold.models import Student
from scaffold.service import Services, StudentServiceImpl


class TestStudentServiceImpl:
    @pytest.mark.asyncio
    async def test_create_assigns_new_id(self, telemetry):
        service = StudentServiceImpl(tracer=telemetry.tracer)

        first = await service.create(Student(name="Alice", roll=5))
        second = await service.create(Student(name="Alice", roll=5))

        assert isinstance(first.id, UUID)
        assert first.id != second.id
        assert (first.name, first.roll) == ("Alice", 5)

    @pytest.mark.asyncio
    async def test_client_id_is_replaced(self, telemetry):
        service = StudentServiceImpl(tracer=telemetry.tracer)
        client_id = UUID("00000000-0000-0000-0000-000000000001")

        student = await service.create(Student(id=client_id, name="Bob", roll=1))

        assert student.id != client_id

    @pytest.mark.asyncio
    async def test_create_span_records_total(self, telemetry, span_exporter):
        service = StudentServiceImpl(tracer=telemetry.tracer, work_delay=0.01)

        await service.create(Student(name="Alice", roll=5))

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "student.create"
        total = span.attributes["total"]
        assert total.endswith("s")
        assert float(total[:-1]) >= 0.01

    @pytest.mark.asyncio
    async def test_cancellation_during_work(self, telemetry, span_exporter):
        service = StudentServiceImpl(tracer=telemetry.tracer, work_delay=10)

        task = asyncio.create_task(service.create(Student(name="Alice", roll=5)))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        (span,) = span_exporter.get_finished_spans()
        assert "total" in span.attributes


class TestServices:
    def test_create_wires_student_service(self, settings, telemetry):
        services = Services.create(settings, telemetry, repository=None)

        assert isinstance(services.student_service, StudentServiceImpl)
        assert services.student_service.work_delay == settings.STUDENT_CREATE_DELAY
