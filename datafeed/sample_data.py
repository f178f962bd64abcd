"""Fixed placeholder datasets served when the spreadsheet is unreachable or empty.

Rows are stored as raw string cells, exactly as the Sheets API would return
them, and go through the same normalizer as live data.
"""

from __future__ import annotations

import copy
from typing import Dict, List

from datafeed.normalize import NormalizedRecord, NormalizedSheet, normalize_rows
from datafeed.sheet_types import get_sheet_type


SAMPLE_DATA_VERSION = "2024.06"

_SAMPLE_BODIES: Dict[str, List[List[str]]] = {
    "branch_target_leads": [
        ["2024-06-14", "Gurugram", "2022-04-01", "26", "Gurugram", "5", "4", "-1", "-20.0%", "60", "65", "5", "8.3%"],
        ["2024-06-14", "Bhiwadi", "2023-01-16", "17", "Gurugram", "4", "5", "1", "25.0%", "50", "46", "-4", "-8.0%"],
        ["2024-06-14", "Faridabad", "2022-07-11", "23", "Faridabad", "4", "3", "-1", "-25.0%", "40", "38", "-2", "-5.0%"],
        ["2024-06-14", "Pitampura", "2022-10-03", "20", "Delhi", "3", "3", "0", "0.0%", "45", "48", "3", "6.7%"],
        ["2024-06-14", "Yelahanka", "2024-01-08", "5", "Karnataka", "5", "6", "1", "20.0%", "55", "52", "-3", "-5.5%"],
        ["2024-06-14", "Ghaziabad", "2023-11-20", "7", "Ghaziabad", "4", "2", "-2", "-50.0%", "48", "36", "-12", "-25.0%"],
    ],
    "branch_disbursement": [
        ["Gurugram", "Gurugram", "35", "32", "-8.6%"],
        ["Pitampura", "Delhi", "25", "20", "-20.0%"],
        ["Faridabad", "Faridabad", "28", "22", "-21.4%"],
        ["Yelahanka", "Karnataka", "32", "30", "-6.3%"],
        ["Kalyan", "Maharashtra", "20", "23", "15.0%"],
    ],
    "kpi_summary": [
        ["Gurugram", "Gurugram", ">6M", "1610", "867", "230", "161", "110", "62", "59", "20", "64", "8"],
        ["Faridabad", "Faridabad", ">6M", "2100", "676", "300", "209", "95", "51", "77", "20", "60", "5"],
        ["Yelahanka", "Karnataka", "<6M", "1330", "501", "190", "100", "80", "40", "49", "5", "49", "2"],
        ["Pitampura", "Delhi", ">6M", "1540", "498", "220", "93", "75", "41", "57", "9", "63", "2"],
        ["Ghaziabad", "Ghaziabad", "<6M", "1610", "542", "230", "78", "70", "34", "59", "4", "52", "0"],
    ],
    "green_amber_leads": [
        ["Gurugram", "Gurugram", "4", "8", "12", "33.3%", "66.7%"],
        ["Yelahanka", "Karnataka", "3", "7", "10", "30.0%", "70.0%"],
        ["Davanagere", "Karnataka", "2", "7", "9", "22.2%", "77.8%"],
        ["Faridabad", "Faridabad", "5", "7", "12", "41.7%", "58.3%"],
        ["Pitampura", "Delhi", "6", "6", "12", "50.0%", "50.0%"],
        ["Panipat", "Karnal", "4", "6", "10", "40.0%", "60.0%"],
    ],
    "credit_logins": [
        ["Gurugram", "Gurugram", "68%", "48%"],
        ["Pitampura", "Delhi", "47%", "50%"],
        ["Yelahanka", "Karnataka", "60%", "35%"],
        ["Kengeri", "Karnataka", "61%", "42%"],
        ["Kalyan", "Maharashtra", "52%", "40%"],
        ["Faridabad", "Faridabad", "62%", "38%"],
    ],
}


def sample_raw_rows(sheet_type: str) -> List[List[str]]:
    """Header row followed by the sample body; a fresh copy on every call."""
    st = get_sheet_type(sheet_type)
    return [list(st.headers)] + copy.deepcopy(_SAMPLE_BODIES[st.key])


def sample_sheet(sheet_type: str) -> NormalizedSheet:
    return normalize_rows(sample_raw_rows(sheet_type))


def sample_records(sheet_type: str) -> List[NormalizedRecord]:
    return sample_sheet(sheet_type).rows
