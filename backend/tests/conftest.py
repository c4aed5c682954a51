import copy

import pytest

VALID_SECTIONS = {
    "basicInfo": {
        "firstName": "Ana",
        "lastName": "Costa",
        "email": "ana.costa@example.com",
        "homeUniversity": "University of Lisbon",
        "levelOfStudy": "Master",
        "hostUniversity": "TU Delft",
        "hostCountry": "Netherlands",
        "hostCity": "Delft",
        "exchangePeriod": "Semester",
        "exchangeStartDate": "2025-09-01",
        "exchangeEndDate": "2026-01-31",
    },
    "courses": {
        "courses": [
            {
                "homeCourse": "Thermodynamics",
                "hostCourse": "Applied Thermodynamics",
                "ects": 6,
                "courseQuality": 4,
            }
        ]
    },
    "accommodation": {
        "accommodationType": "Student Residence",
        "accommodationAddress": "Mekelweg 5, Delft",
        "monthlyRent": 550,
        "billsIncluded": "Yes",
        "accommodationRating": 4,
        "wouldRecommend": True,
    },
    "livingExpenses": {
        "currency": "EUR",
        "monthlyFood": 250,
        "monthlyTransport": 40,
    },
    "experience": {
        "overallRating": 5,
        "highlights": "Great campus life and very helpful professors.",
        "wouldRecommend": True,
        "tips": ["Book housing early"],
    },
}


@pytest.fixture
def valid_sections() -> dict:
    return copy.deepcopy(VALID_SECTIONS)
