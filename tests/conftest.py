import copy

import pytest

from portfolio_agent.audit_logger import AuditLog
from portfolio_agent.commands import parse_command
from portfolio_agent.event_bus import EventBus
from portfolio_agent.executor import CommandExecutor
from portfolio_agent.store import MemoryStore

SEED = {
    "projects": [
        {
            "title": "Portfolio Site",
            "description": "Personal website with an assistant",
            "stack": ["Next.js", "React", "Tailwind"],
            "year": 2024,
            "links": {"github": "https://github.com/example/site", "live": ""},
            "featured": True,
            "status": "completed",
            "lessons": ["Ship small"],
        },
        {
            "title": "Crop Yield Model",
            "description": "Machine learning forecasts for farms",
            "stack": ["Python", "scikit-learn"],
            "year": 2023,
            "links": {"github": "", "live": ""},
            "featured": False,
            "status": "in-progress",
            "lessons": [],
        },
    ],
    "skills": [
        {"name": "Python", "iconName": "SiPython", "colorClass": "text-blue-500", "category": "Backend", "level": 90},
        {"name": "Flutter", "iconName": "SiFlutter", "colorClass": "text-sky-400", "category": "Mobile", "level": 70},
    ],
    "about": {
        "name": "Sam Doe",
        "title": "Software Engineer",
        "location": "Lahore",
        "bio": "Builds things.",
        "email": "sam@example.com",
        "github": "https://github.com/example",
        "linkedin": "https://linkedin.com/in/example",
        "roles": ["Engineer", "Founder"],
    },
    "goals": {
        "shortTerm": ["Finish the thesis", "Learn Rust"],
        "longTerm": ["Start a company"],
        "currentFocus": "Thesis",
        "vision": "Useful software",
        "mission": "Ship",
    },
    "journey": {
        "student": [
            {"id": "student-1", "year": "2019", "title": "Started university", "desc": "CS degree", "icon": "GraduationCap", "iconColor": "text-indigo-600"},
            {"id": "student-2", "year": "2021 - 2022", "title": "Hackathon win", "desc": "First place", "icon": "Trophy", "iconColor": "text-amber-500"},
        ],
        "entrepreneur": [],
    },
}


def cmd(type_, **payload):
    """Build a validated command from wire-form payload keys."""
    return parse_command({"type": type_, "payload": payload})


@pytest.fixture
def seed():
    return copy.deepcopy(SEED)


@pytest.fixture
def store(seed):
    return MemoryStore(seed)


@pytest.fixture
def audit_log(store):
    return AuditLog(store, max_entries=1000)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def executor(store, audit_log, bus):
    return CommandExecutor(store, audit_log, bus=bus)
