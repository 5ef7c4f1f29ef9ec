"""Tests for the Google Ads CSV importers."""

import pytest
from sqlmodel import select

from kwpilot.importers.campaign_performance import import_campaign_performance
from kwpilot.importers.csv_utils import decode_bytes, parse_int, parse_number, read_rows, sniff_delimiter
from kwpilot.importers.editor_export import import_editor_export, parse_criterion_type, row_kind
from kwpilot.models.knowledge_base_models import GadsCampaign, GadsKeyword

PERFORMANCE_CSV = """Campaign report
"1 January 2026 - 31 January 2026"
Campaign state,Campaign,Campaign type,Clicks,Impr.,CTR,Currency code,Avg. CPC,Cost,Conversions
Enabled,AWS - India,Search,"1,204","45,310",2.66%,INR,₹18.40,"22,153.60",31.00
Paused,Azure - India,Search,88,"3,002",2.93%,INR,₹21.10,"1,856.80",--
Removed,Old Campaign,Search,0,0,0.00%,INR,--,0.00,0.00
Total: Account,,,"1,292","48,312",2.67%,INR,₹18.57,"24,010.40",31.00
"""

EDITOR_HEADERS = [
    "Account",
    "Campaign",
    "Campaign Type",
    "Campaign Status",
    "Budget",
    "Ad Group",
    "Max CPC",
    "Keyword",
    "Criterion Type",
    "Status",
    "Quality score",
]


def _editor_bytes(rows):
    lines = ["\t".join(EDITOR_HEADERS)]
    for row in rows:
        values = [row.get(h, "") for h in EDITOR_HEADERS]
        lines.append("\t".join(values))
    return "\r\n".join(lines).encode("utf-16")


EDITOR_ROWS = [
    {"Account": "351-501-2934", "Campaign": "AWS", "Campaign Type": "Search", "Campaign Status": "Enabled", "Budget": "1,500.00"},
    {"Account": "351-501-2934", "Campaign": "AWS", "Ad Group": "AWS Training", "Max CPC": "25.00"},
    {"Account": "351-501-2934", "Campaign": "AWS", "Ad Group": "AWS Training", "Keyword": "AWS Course", "Criterion Type": "Phrase", "Status": "Enabled", "Quality score": "7"},
    {"Account": "351-501-2934", "Campaign": "AWS", "Ad Group": "AWS Training", "Keyword": "free", "Criterion Type": "Negative Broad"},
    {"Account": "351-501-2934", "Campaign": "AWS", "Keyword": "jobs", "Criterion Type": "Campaign Negative Exact"},
    {"Account": "351-501-2934", "Campaign": "Azure", "Ad Group": "AZ-104", "Keyword": "az 104", "Criterion Type": "Exact"},
]


class TestCsvUtils:
    @pytest.mark.parametrize(
        "raw,expected",
        [("1,234.5", 1234.5), ("12.3%", 12.3), ("₹18.40", 18.4), ("--", None), ("", None), ("n/a", None)],
    )
    def test_parse_number(self, raw, expected):
        assert parse_number(raw) == expected

    def test_parse_int_truncates(self):
        assert parse_int("1,204.9") == 1204

    def test_decode_utf16_and_bom(self):
        assert decode_bytes("a\tb".encode("utf-16")) == "a\tb"
        assert decode_bytes("\ufeffa,b".encode("utf-8")) == "a,b"

    def test_delimiter_and_blank_rows(self):
        assert sniff_delimiter("a\tb\tc\n1\t2\t3") == "\t"
        assert read_rows("a,b\n\n , \n1, 2 \n") == [["a", "b"], ["1", "2"]]


class TestCampaignPerformance:
    def test_import_and_reimport(self, session):
        result = import_campaign_performance(session, PERFORMANCE_CSV, "351-501-2934", "Flexi")
        assert result == {
            "campaigns_imported": 2,
            "created": 2,
            "updated": 0,
            "skipped": 2,
            "date_range": "1 January 2026 - 31 January 2026",
        }
        aws = session.exec(select(GadsCampaign).where(GadsCampaign.name == "AWS - India")).one()
        assert aws.clicks == 1204
        assert aws.impressions == 45310
        assert aws.avg_cpc == 18.4
        assert aws.cost == 22153.6
        assert aws.currency_code == "INR"
        azure = session.exec(select(GadsCampaign).where(GadsCampaign.name == "Azure - India")).one()
        assert azure.conversions is None

        again = import_campaign_performance(session, PERFORMANCE_CSV.encode("utf-8"), "3515012934")
        assert again["created"] == 0 and again["updated"] == 2

    def test_missing_campaign_column(self, session):
        with pytest.raises(ValueError, match="Campaign"):
            import_campaign_performance(session, "Title\nRange\nClicks,Cost\n1,2\n", "1")

    def test_too_short(self, session):
        with pytest.raises(ValueError):
            import_campaign_performance(session, "Title\n", "1")


class TestEditorExport:
    def test_criterion_type(self):
        assert parse_criterion_type("Negative Phrase") == ("PHRASE", True)
        assert parse_criterion_type("Campaign Negative Exact") == ("EXACT", True)
        assert parse_criterion_type("Exact") == ("EXACT", False)
        assert parse_criterion_type("") == ("BROAD", False)

    def test_row_kind(self):
        assert row_kind("C", "", "") == "campaigns"
        assert row_kind("C", "G", "") == "ad_groups"
        assert row_kind("C", "G", "k") == "keywords"
        assert row_kind("C", "", "k") is None
        assert row_kind("", "G", "k") is None

    def test_import(self, session):
        result = import_editor_export(session, _editor_bytes(EDITOR_ROWS))
        assert result["accounts"] == {"created": 1, "updated": 0}
        assert result["campaigns"] == {"created": 2, "updated": 0}
        assert result["ad_groups"] == {"created": 2, "updated": 0}
        assert result["keywords"] == {"created": 3, "updated": 0}
        assert result["skipped"] == 1
        assert result["rows"] == 6

        keywords = {k.keyword_text: k for k in session.exec(select(GadsKeyword)).all()}
        assert keywords["aws course"].match_type == "PHRASE"
        assert keywords["aws course"].quality_score == 7
        assert keywords["free"].is_negative
        assert "jobs" not in keywords

        campaign = session.exec(select(GadsCampaign).where(GadsCampaign.name == "AWS")).one()
        assert campaign.budget == 1500.0

    def test_reimport_counts_updates(self, session):
        import_editor_export(session, _editor_bytes(EDITOR_ROWS))
        result = import_editor_export(session, _editor_bytes(EDITOR_ROWS))
        assert result["accounts"] == {"created": 0, "updated": 1}
        assert result["campaigns"] == {"created": 0, "updated": 1}
        assert result["keywords"] == {"created": 0, "updated": 3}

    def test_customer_id_override(self, session):
        rows = [{"Campaign": "AWS"}]
        result = import_editor_export(session, _editor_bytes(rows), customer_id="999", account_name="Override")
        assert result["accounts"]["created"] == 1
        assert result["campaigns"]["created"] == 1

    def test_no_data(self, session):
        with pytest.raises(ValueError):
            import_editor_export(session, "Campaign\tAd Group\n")
