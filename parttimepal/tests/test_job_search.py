"""
Tests for job search parsing, logo derivation and the search service.

Run with: python -m pytest parttimepal/tests/test_job_search.py -v
"""

import asyncio

import pytest

from parttimepal.core.errors import ProviderError, SearchFailedError
from parttimepal.core.llm_client import MockLLMClient, GroundingTool
from parttimepal.core.schemas import SearchCriteria, SalaryRange, WorkShift, LatLng
from parttimepal.services.job_search import (
    JobSearchService, parse_job_listings, derive_logo_url, build_search_query,
    DEFAULT_COMPANY, DEFAULT_SALARY, DEFAULT_SOURCE, JOB_SEPARATOR
)
from parttimepal.tests.helpers import scripted_client, fail, prompt_text


RECORDS = """Title: Nhân viên phục vụ
Company: Highlands Coffee
Domain: highlandscoffee.com.vn
Location: Cầu Giấy, Hà Nội
Salary: 25.000đ/giờ
Description: Phục vụ khách, ca linh hoạt.
Source: TopCV
Link: https://www.topcv.vn/viec-lam/123
---JOB_SEPARATOR---
Company: Bản ghi không có tiêu đề
Salary: 30.000đ/giờ
---JOB_SEPARATOR---
**Title:** Gia sư Toán
- Link: liên hệ qua Zalo
---JOB_SEPARATOR---
"""


class TestParseJobListings:

    def test_records_parsed_and_untitled_dropped(self):
        jobs = parse_job_listings(RECORDS, SearchCriteria(keyword="phục vụ", city="Hà Nội"))

        assert [job.title for job in jobs] == ["Nhân viên phục vụ", "Gia sư Toán"]
        assert jobs[0].id.startswith("job-0-")
        assert jobs[1].id.startswith("job-2-")
        assert len({job.id for job in jobs}) == 2

    def test_full_record(self):
        job = parse_job_listings(RECORDS, SearchCriteria(keyword="phục vụ"))[0]

        assert job.company == "Highlands Coffee"
        assert job.location == "Cầu Giấy, Hà Nội"
        assert job.salary == "25.000đ/giờ"
        assert job.source == "TopCV"
        assert job.logo_url == "https://logo.clearbit.com/highlandscoffee.com.vn"
        assert job.original_link == "https://www.topcv.vn/viec-lam/123"

    def test_defaults_for_missing_fields(self):
        job = parse_job_listings(RECORDS, SearchCriteria(keyword="gia sư", city="Đà Nẵng"))[1]

        assert job.company == DEFAULT_COMPANY
        assert job.salary == DEFAULT_SALARY
        assert job.source == DEFAULT_SOURCE
        assert job.location == "Đà Nẵng"
        assert job.description == ""
        assert job.logo_url is None
        assert job.original_link is None

    def test_numbered_records(self):
        text = (
            "1. Title: Phục vụ\nCompany: A\n"
            f"{JOB_SEPARATOR}\n"
            "2) **Title:** Gia sư\n2. Company: B\n"
        )

        jobs = parse_job_listings(text, SearchCriteria(keyword="x"))

        assert [(job.title, job.company) for job in jobs] == [("Phục vụ", "A"), ("Gia sư", "B")]

    def test_location_falls_back_to_country(self):
        job = parse_job_listings("Title: Phát tờ rơi", SearchCriteria(keyword="tờ rơi"))[0]
        assert job.location == "Việt Nam"

    def test_no_records(self):
        assert parse_job_listings("Xin lỗi, không tìm thấy việc làm nào.", SearchCriteria(keyword="x")) == []
        assert parse_job_listings("", SearchCriteria(keyword="x")) == []


class TestLogoUrl:

    @pytest.mark.parametrize("domain, expected", [
        ("highlandscoffee.com.vn", "https://logo.clearbit.com/highlandscoffee.com.vn"),
        ("https://www.topcv.vn/viec-lam", "https://logo.clearbit.com/topcv.vn"),
        ("facebook.com", None),
        ("m.facebook.com", None),
        ("google.com", None),
        ("a.b", None),
        ("công ty abc", None),
        ("", None),
        (None, None),
    ])
    def test_derive_logo_url(self, domain, expected):
        assert derive_logo_url(domain) == expected


def test_build_search_query():
    criteria = SearchCriteria(
        keyword="phục vụ",
        city="Hà Nội",
        district="Cầu Giấy",
        job_category="F&B",
        work_shifts=[WorkShift.EVENING, WorkShift.WEEKEND],
        salary_range=SalaryRange(min=20000, max=30000)
    )

    assert build_search_query(criteria) == (
        "việc làm part-time cho sinh viên phục vụ ngành F&B tại Cầu Giấy ở Hà Nội "
        "(Ca tối, Cuối tuần) lương từ 20.000đ đến 30.000đ"
    )


def test_blank_keyword_rejected():
    with pytest.raises(ValueError):
        SearchCriteria(keyword="   ")


class TestJobSearchService:

    def test_search_with_mock(self):
        client = MockLLMClient()
        service = JobSearchService(client)

        result = asyncio.run(service.search(
            SearchCriteria(keyword="phục vụ", city="Hà Nội"),
            LatLng(lat=21.03, lng=105.85)
        ))

        assert [job.company for job in result.jobs] == ["Highlands Coffee", "Trung tâm Gia sư Mẫu"]
        assert [s.uri for s in result.sources] == ["https://www.topcv.vn"]

        call = client.calls[0]
        assert call["options"].tools == [GroundingTool.WEB_SEARCH]
        assert "Latitude 21.03, Longitude 105.85" in prompt_text(call["parts"])

    def test_zero_results_is_not_an_error(self):
        service = JobSearchService(scripted_client(search="Không tìm thấy tin tuyển dụng nào."))

        result = asyncio.run(service.search(SearchCriteria(keyword="thợ lặn")))

        assert result.jobs == []

    def test_provider_error_becomes_search_failed(self):
        service = JobSearchService(scripted_client(search=fail(ProviderError("quota"))))

        with pytest.raises(SearchFailedError) as exc_info:
            asyncio.run(service.search(SearchCriteria(keyword="phục vụ")))

        assert exc_info.value.user_message == "Lỗi khi tìm kiếm việc làm."
