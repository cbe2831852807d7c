"""Shared test fixtures"""
import json
import uuid

import pytest

from mvp_planner_server.key_store import InMemoryKeyStore, SQLKeyStore


@pytest.fixture
def store() -> InMemoryKeyStore:
    """Fresh in-memory key store"""
    return InMemoryKeyStore()


@pytest.fixture
def sql_store():
    """SQLite in-memory key store with the schema created"""
    store = SQLKeyStore("sqlite://")
    store.create_tables()
    yield store
    store.engine.dispose()


@pytest.fixture
def add_keys():
    """Create keys with the given daily usages, returned in id order"""
    async def _add(store, provider, *usages, active=True):
        keys = []
        for usage in usages:
            key = await store.create_key(
                provider,
                f"{provider}-{uuid.uuid4().hex}",
                active=active,
                daily_usage=usage,
            )
            keys.append(key)
        return keys
    return _add


@pytest.fixture
def sample_plan() -> dict:
    """Plan JSON as the content provider returns it"""
    return {
        "coreFeatures": ["Meal listings", "Order scheduling", "Ratings"],
        "techStack": {
            "frontend": "Next.js",
            "backend": "FastAPI",
            "database": "PostgreSQL",
            "payment": "Stripe",
            "hosting": "Fly.io",
        },
        "monetizationStrategy": "10% commission on each order",
        "timeline": {"mvp": "6 weeks", "launch": "3 months", "growth": "6 months"},
        "estimatedCost": {"development": "$20,000", "monthly": "$400"},
        "marketAnalysis": {
            "targetMarket": "Office workers in dense city centres",
            "competition": "Food delivery apps",
            "opportunity": "Home-cooked food at lunch prices",
        },
        "nextSteps": ["Interview 20 office workers", "Recruit 5 home cooks"],
    }


@pytest.fixture
def sample_plan_text(sample_plan) -> str:
    """Provider output wrapped in a markdown code fence"""
    return "```json\n" + json.dumps(sample_plan) + "\n```"


@pytest.fixture
def sample_plan_request() -> dict:
    """Sample plan generation payload"""
    return {
        "idea": "A marketplace connecting home cooks with office workers",
        "industry": "Food & Beverage",
        "targetAudience": "Office workers",
        "budget": "$10,000 - $50,000",
    }


@pytest.fixture
def sample_post() -> dict:
    """Blog post JSON as the content provider returns it"""
    return {
        "title": "Validate Before You Build",
        "slug": "validate-before-you-build",
        "excerpt": "Most startups fail for lack of customers. Here is how to find them first.",
        "content": "## Talk to users\n\nStart with ten interviews.\n\n## Build a landing page\n\nMeasure sign-ups.",
        "metaTitle": "Validate Before You Build",
        "metaDescription": "How to validate a startup idea before writing code.",
        "keywords": ["validation", "mvp", "startup"],
        "author": "MVP Generator AI Team",
    }


@pytest.fixture
def sample_post_text(sample_post) -> str:
    """Post output wrapped in a markdown code fence"""
    return "```json\n" + json.dumps(sample_post) + "\n```"
