"""
TLE Parser Module

Parses Two-Line Element (TLE) sets into validated, immutable records.

TLE Format:
The TLE format encodes a satellite's mean orbital elements at a reference epoch
in two 69-character lines. Every line ends in a mod-10 checksum digit which is
verified before any field is trusted. This module provides:
- Checksum computation and validation
- Epoch decoding (two-digit year + fractional day of year -> UTC instant)
- Field validation for the orbital elements consumed by SGP4
- Splitting of raw response bodies (optional name line + line pairs)

References:
- Vallado, D. A., et al. (2006). "Revisiting Spacetrack Report #3." AIAA 2006-6753
- CelesTrak TLE format documentation: https://celestrak.org/NORAD/documentation/tle-fmt.php
"""

import calendar
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from orbit_tracker.errors import ParseError, ParseErrorKind

TLE_LINE_LENGTH = 69

_BOM = "\ufeff"
_MICROSECONDS_PER_DAY = 86_400_000_000

# Line 1 drag terms: ndot is a plain decimal, nddot and B* use the implied
# decimal point form " 12345-4" (0.12345e-4)
_DECIMAL = re.compile(r"[+-]?\d*\.\d+")
_IMPLIED_DECIMAL = re.compile(r"[+-]?\d{5}[+-]\d")


class ElementSetRecord(BaseModel):
    """A validated two-line element set. Never mutated; refetches replace it."""

    model_config = ConfigDict(frozen=True)

    norad_id: int
    name: Optional[str] = None
    line1: str
    line2: str
    epoch: datetime
    checksum_valid: bool = True

    @property
    def inclination_deg(self) -> float:
        return float(self.line2[8:16])

    @property
    def raan_deg(self) -> float:
        return float(self.line2[17:25])

    @property
    def eccentricity(self) -> float:
        return float("0." + self.line2[26:33].strip())

    @property
    def arg_perigee_deg(self) -> float:
        return float(self.line2[34:42])

    @property
    def mean_anomaly_deg(self) -> float:
        return float(self.line2[43:51])

    @property
    def mean_motion_rev_per_day(self) -> float:
        return float(self.line2[52:63])

    def to_tle_text(self) -> str:
        """Serialize back to TLE text (name line first when present)."""
        lines = [self.name] if self.name else []
        lines.extend([self.line1, self.line2])
        return "\n".join(lines)


class TLEParser:
    """
    Parser and validator for Two-Line Element (TLE) sets.

    Provides methods for:
    - Parsing a line pair into an ElementSetRecord
    - Parsing a multi-record response body
    - Checksum computation
    - Epoch conversion
    """

    def parse(self, line1: str, line2: str, name: Optional[str] = None) -> ElementSetRecord:
        """
        Parse and validate a TLE line pair.

        Args:
            line1: First line of TLE
            line2: Second line of TLE
            name: Optional satellite name (title line)

        Returns:
            Validated ElementSetRecord

        Raises:
            ParseError: with kind WRONG_LINE_LENGTH, CHECKSUM_MISMATCH or
                MALFORMED_FIELD
        """
        line1 = self._clean(line1)
        line2 = self._clean(line2)

        for number, line in (("1", line1), ("2", line2)):
            if len(line) != TLE_LINE_LENGTH:
                raise ParseError(
                    ParseErrorKind.WRONG_LINE_LENGTH,
                    f"line {number} has {len(line)} characters, expected {TLE_LINE_LENGTH}",
                )
            if line[0] != number or line[1] != " ":
                raise ParseError(
                    ParseErrorKind.MALFORMED_FIELD,
                    f"line {number} does not start with line number '{number} '",
                )

        # Checksums come before any field is trusted
        for number, line in (("1", line1), ("2", line2)):
            expected = self.compute_checksum(line)
            if line[68] != str(expected):
                raise ParseError(
                    ParseErrorKind.CHECKSUM_MISMATCH,
                    f"line {number} checksum is {line[68]!r}, computed {expected}",
                )

        norad_1 = self._catalog_number(line1, "1")
        norad_2 = self._catalog_number(line2, "2")
        if norad_1 != norad_2:
            raise ParseError(
                ParseErrorKind.MALFORMED_FIELD,
                f"catalog numbers disagree: line 1 has {norad_1}, line 2 has {norad_2}",
            )

        epoch = self.parse_epoch(line1[18:32])
        self._check_drag_terms(line1)
        self._check_elements(line2)

        clean_name = name.strip() if name else None
        return ElementSetRecord(
            norad_id=norad_1,
            name=clean_name or None,
            line1=line1,
            line2=line2,
            epoch=epoch,
            checksum_valid=True,
        )

    def parse_text(self, body: str) -> Tuple[List[ElementSetRecord], List[Tuple[str, ParseError]]]:
        """
        Parse every TLE in a response body.

        A line that is neither line 1 nor line 2 and sits directly before a
        line 1 is taken as the satellite name (a leading "0 " is dropped).

        Returns:
            Tuple of (records, rejected) where rejected holds (line1, error)
            for each pair that failed validation.
        """
        lines = self.clean_lines(body)
        records: List[ElementSetRecord] = []
        rejected: List[Tuple[str, ParseError]] = []

        i = 0
        while i + 1 < len(lines):
            if lines[i].startswith("1 ") and lines[i + 1].startswith("2 "):
                name = None
                if i > 0 and not lines[i - 1].startswith(("1 ", "2 ")):
                    name = lines[i - 1]
                    if name.startswith("0 "):
                        name = name[2:]
                try:
                    records.append(self.parse(lines[i], lines[i + 1], name))
                except ParseError as e:
                    rejected.append((lines[i], e))
                i += 2
            else:
                i += 1

        return records, rejected

    def clean_lines(self, body: str) -> List[str]:
        """Strip BOM, CR and trailing whitespace; drop empty lines."""
        cleaned = []
        for raw in body.splitlines():
            line = raw.replace(_BOM, "").rstrip()
            if line.strip():
                cleaned.append(line.lstrip() if not line.startswith(("1 ", "2 ")) else line)
        return cleaned

    def parse_epoch(self, field: str) -> datetime:
        """
        Convert a TLE epoch field (YYDDD.DDDDDDDD) to a UTC datetime.

        Two-digit years >= 57 map to 19xx, otherwise 20xx. The fractional
        day is converted with integer arithmetic so "24001.50000000" is
        exactly 2024-01-01T12:00:00Z. Day 366 is only valid in leap years.
        """
        text = field.strip()
        try:
            epoch_year = int(text[:2])
            day_text, _, frac_text = text[2:].partition(".")
            day_of_year = int(day_text)
            frac_digits = frac_text.strip() or "0"
            frac_value = int(frac_digits)
        except ValueError:
            raise ParseError(ParseErrorKind.MALFORMED_FIELD, f"invalid epoch field {field!r}")

        if not 1 <= day_of_year <= 366:
            raise ParseError(ParseErrorKind.MALFORMED_FIELD, f"day of year {day_of_year} out of range")
        if day_of_year == 366 and not calendar.isleap(self.full_year(epoch_year)):
            raise ParseError(
                ParseErrorKind.MALFORMED_FIELD,
                f"day 366 in non-leap year {self.full_year(epoch_year)}",
            )

        scale = 10 ** len(frac_digits)
        micros = (frac_value * _MICROSECONDS_PER_DAY + scale // 2) // scale
        return self.epoch_to_datetime(epoch_year, day_of_year) + timedelta(microseconds=micros)

    def epoch_to_datetime(self, epoch_year: int, day_of_year: int) -> datetime:
        """
        Convert a two-digit TLE year and whole day of year to a UTC datetime.

        Args:
            epoch_year: Two-digit year
            day_of_year: Day of year, 1 is January 1

        Returns:
            Datetime at 00:00 UTC of that day
        """
        return datetime(self.full_year(epoch_year), 1, 1, tzinfo=timezone.utc) + timedelta(days=day_of_year - 1)

    @staticmethod
    def full_year(epoch_year: int) -> int:
        """Two-digit TLE year to a calendar year: 57-99 are 19xx, 00-56 are 20xx."""
        return 1900 + epoch_year if epoch_year >= 57 else 2000 + epoch_year

    @staticmethod
    def compute_checksum(line: str) -> int:
        """Calculate TLE checksum: digits count at face value, '-' as one."""
        checksum = 0
        for char in line[:68]:
            if char.isdigit():
                checksum += int(char)
            elif char == "-":
                checksum += 1
        return checksum % 10

    def _clean(self, line: str) -> str:
        return line.replace(_BOM, "").rstrip()

    def _catalog_number(self, line: str, number: str) -> int:
        field = line[2:7].strip()
        if not field.isdigit():
            raise ParseError(
                ParseErrorKind.MALFORMED_FIELD,
                f"line {number} catalog number {line[2:7]!r} is not numeric",
            )
        return int(field)

    def _check_drag_terms(self, line1: str) -> None:
        ndot = line1[33:43]
        if not _DECIMAL.fullmatch(ndot.strip()):
            raise ParseError(ParseErrorKind.MALFORMED_FIELD, f"ndot field {ndot!r} is not a decimal")
        for label, raw in (("nddot", line1[44:52]), ("bstar", line1[53:61])):
            if not _IMPLIED_DECIMAL.fullmatch(raw.strip()):
                raise ParseError(
                    ParseErrorKind.MALFORMED_FIELD,
                    f"{label} field {raw!r} is not in implied-decimal form",
                )

    def _check_elements(self, line2: str) -> None:
        fields = {
            "inclination": line2[8:16],
            "raan": line2[17:25],
            "arg_perigee": line2[34:42],
            "mean_anomaly": line2[43:51],
            "mean_motion": line2[52:63],
        }
        for label, raw in fields.items():
            try:
                float(raw)
            except ValueError:
                raise ParseError(ParseErrorKind.MALFORMED_FIELD, f"{label} field {raw!r} is not numeric")

        eccentricity = line2[26:33].strip()
        if not eccentricity.isdigit():
            raise ParseError(
                ParseErrorKind.MALFORMED_FIELD,
                f"eccentricity field {line2[26:33]!r} is not numeric",
            )
