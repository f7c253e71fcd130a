"""Archive name templating.

Archive names may contain three tokens:

    %DATE%      the run date, e.g. 2023-Nov-01
    %JOBNAME%   the job name
    %DEFAULT%   job name, delimiter and run date, e.g. SQL_2023-Nov-01

Before tokens are substituted, the delimiter is inserted wherever a token
touches a letter or digit, and "%%" becomes "%<delimiter>%", so
"Data%DATE%" and "%JOBNAME%%DATE%" both come out delimited. Punctuation
next to a token ("%JOBNAME%.tar") is left alone.
"""

import re
from datetime import date

TOKEN_DATE = "%DATE%"
TOKEN_JOBNAME = "%JOBNAME%"
TOKEN_DEFAULT = "%DEFAULT%"

_TOKEN = r"%(?:DATE|JOBNAME|DEFAULT)%"
# A token right after a letter or digit
TOKEN_BEFORE = re.compile(r"(?<=[^\W_])" + _TOKEN)
# A token right before a letter or digit
TOKEN_AFTER = re.compile(_TOKEN + r"(?=[^\W_])")


def date_stamp(run_date: date) -> str:
    """Format a date as yyyy-MMM-dd, e.g. 2023-Nov-01."""
    return run_date.strftime("%Y-%b-%d").replace(".", "")


def default_archive_name(job_name: str, delimiter: str, stamp: str) -> str:
    return f"{job_name}{delimiter}{stamp}"


def _separate_before(text: str, delimiter: str) -> str:
    def insert(match):
        head = match.string[:match.start()]
        if head and not head.endswith(delimiter):
            return delimiter + match.group(0)
        return match.group(0)

    return TOKEN_BEFORE.sub(insert, text)


def _separate_after(text: str, delimiter: str) -> str:
    def insert(match):
        tail = match.string[match.end():]
        if tail and not tail.startswith(delimiter):
            return match.group(0) + delimiter
        return match.group(0)

    return TOKEN_AFTER.sub(insert, text)


def expand_archive_name(template: str, job_name: str, delimiter: str, stamp: str) -> str:
    """Expand an archive name template for one job.

    The five steps always run in this order, whether or not a token is
    present, so substituted text is never re-checked for adjacency.
    """
    result = template.strip()

    result = _separate_before(result, delimiter)
    result = _separate_after(result, delimiter)

    result = result.replace("%%", f"%{delimiter}%")

    result = result.replace(TOKEN_DATE, stamp)
    result = result.replace(TOKEN_JOBNAME, job_name)
    result = result.replace(TOKEN_DEFAULT, default_archive_name(job_name, delimiter, stamp))

    return result
