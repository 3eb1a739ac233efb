import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from request_system.constants import CODE_PREFIXES, CODE_SEQUENCE_WIDTH, RequestType
from request_system.errors import StoreError
from request_system.extensions import db
from request_system.models import CodeSequence, RequestRecord

logger = logging.getLogger(__name__)


class ReferenceCodeService:
    """
    Mints reference codes such as ``PRF-2024-000123``.

    Codes sort lexicographically in the order they were generated: the year only
    ever moves forward and the counter is zero-padded. The counter row is locked
    and bumped inside the caller's transaction, so the code is committed (or rolled
    back) together with the record that uses it.
    """

    @staticmethod
    def format_code(request_type, year, number):
        prefix = CODE_PREFIXES[RequestType(request_type)]
        return f"{prefix}-{year}-{str(number).zfill(CODE_SEQUENCE_WIDTH)}"

    @staticmethod
    def parse_number(code):
        try:
            return int(code.rsplit('-', 1)[1])
        except (AttributeError, IndexError, ValueError):
            return 0

    @classmethod
    def _highest_existing(cls, request_type, year):
        prefix = f"{CODE_PREFIXES[request_type]}-{year}-"
        last = (RequestRecord.query
                .filter(RequestRecord.request_type == request_type.value,
                        RequestRecord.code.like(f"{prefix}%"))
                .order_by(RequestRecord.code.desc())
                .first())
        return cls.parse_number(last.code) if last else 0

    @staticmethod
    def _advance(sequence, year):
        # A clock that reports an earlier year must not move codes backwards
        if year > sequence.year:
            sequence.year = year
            sequence.last_value = 0
        sequence.last_value += 1

    @classmethod
    def next_code(cls, request_type, today=None):
        """Reserves the next code for ``request_type``. Raises StoreError if the counter is unavailable."""
        request_type = RequestType(request_type)
        year = (today or date.today()).year
        try:
            sequence = db.session.get(CodeSequence, request_type.value, with_for_update=True)
            if sequence is None:
                sequence = CodeSequence(request_type=request_type.value, year=year,
                                        last_value=cls._highest_existing(request_type, year))
                db.session.add(sequence)
            cls._advance(sequence, year)
            db.session.flush()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Reference code counter unavailable for %s", request_type.value)
            raise StoreError(f"Could not reserve a {request_type.label} code") from e

        code = cls.format_code(request_type, sequence.year, sequence.last_value)
        logger.debug("Reserved %s", code)
        return code

    @classmethod
    def peek_code(cls, request_type, today=None):
        """The code the next submission would receive, without reserving it."""
        request_type = RequestType(request_type)
        year = (today or date.today()).year
        sequence = db.session.get(CodeSequence, request_type.value)
        if sequence is None:
            return cls.format_code(request_type, year, cls._highest_existing(request_type, year) + 1)
        if year > sequence.year:
            return cls.format_code(request_type, year, 1)
        return cls.format_code(request_type, sequence.year, sequence.last_value + 1)
