"""
Shared TLE fixtures for the test suite.

Reference vectors for 28057 and 06251 are from the Vallado et al. (2006)
verification set (tcppver.out), t = 0 minutes. Checksums of the 28872 lines
are recomputed on import.
"""

from orbit_tracker.tle_parser import TLEParser

ISS_NAME = "ISS (ZARYA)"
ISS_LINE1 = "1 25544U 98067A   23259.57580000  .00012022  00000-0  21844-3 0  9995"
ISS_LINE2 = "2 25544  51.6416 220.9944 0004263 122.0101 312.2755 15.49541986415598"

# Near-circular sun-synchronous LEO
SAT_28057_LINE1 = "1 28057U 03049A   06177.78615833  .00000060  00000-0  35940-4 0  1836"
SAT_28057_LINE2 = "2 28057  98.4283 247.6961 0000884  88.1964 271.9322 14.35478080140550"
SAT_28057_POSITION_KM = (-2715.28237486, -6619.26436889, -0.01341443)
SAT_28057_VELOCITY_KM_S = (-1.008587273, 0.422782003, 7.385272942)

SAT_06251_LINE1 = "1 06251U 62025E   06176.82412014  .00008885  00000-0  12808-3 0  3985"
SAT_06251_LINE2 = "2 06251  58.0579  54.0425 0030035 139.1568 221.1854 15.56387291  6774"
SAT_06251_POSITION_KM = (3988.31022699, 5498.96657235, 0.90055879)


def with_checksum(body: str) -> str:
    """Append the checksum digit to the first 68 columns of a TLE line."""
    body = body[:68]
    return body + str(TLEParser.compute_checksum(body))


def replace_columns(line: str, start: int, text: str) -> str:
    """Overwrite columns of a line and recompute its checksum."""
    return with_checksum(line[:start] + text + line[start + len(text):68])


def group_body(*pairs) -> str:
    """Render (name, line1, line2) triples as a CelesTrak response body."""
    lines = []
    for name, line1, line2 in pairs:
        lines.extend([name, line1, line2])
    return "\r\n".join(lines) + "\r\n"

# Minotaur rocket body with perigee below the Earth's surface (Vallado
# verification set); SGP4 reports it decayed within the first revolution
SAT_28872_LINE1 = with_checksum("1 28872U 05037B   05333.02012661  .25992681  00000-0  24476-3 0  1534")
SAT_28872_LINE2 = with_checksum("2 28872  96.4736 157.9986 0303955 244.0492 110.6523 16.46015938 10708")
