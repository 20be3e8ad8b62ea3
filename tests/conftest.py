"""
Test configuration and fixtures.
"""

import copy
import shutil
import tempfile
from pathlib import Path

import pytest

from atelier.core.scheduler import VirtualClock
from atelier.core.store import InMemorySessionStore
from atelier.core.tracker import DecisionTracker
from atelier.models.config import RecoveryConfig


SAMPLE_ANALYSIS = {
    "product_analysis": {
        "product": {
            "name": "Aura Serum",
            "category": "skincare",
            "description": "Brightening vitamin C serum",
            "key_features": ["hydration", "vitamin C", "fragrance-free"],
        },
        "target_audience": {
            "primary": {
                "demographics": {
                    "age_range": "25-40",
                    "lifestyle": ["urban professionals", "wellness seekers"],
                },
            },
        },
        "metadata": {"confidence_score": 0.9},
    },
    "commercial_strategy": {"channels": ["instagram", "retail"]},
    "strategic_insights": {
        "key_selling_points": ["Clinically tested", "Visible results in 7 days", "Clean formula"],
        "target_audience_profile": {
            "primary": "Urban professionals aged 25-40",
            "motivations": ["confidence in appearance", "trust in ingredients", "calm routine", "value"],
        },
        "competitive_advantages": ["premium ingredients", "dermatologist approved", "sustainable packaging"],
        "brand_positioning": "premium clean skincare",
    },
    "visual_opportunities": {
        "hero_shot_requirements": ["Clean white background", "Soft natural light"],
        "emotional_tones": ["calming", "sophisticated"],
        "visual_styles": ["minimalist", "luxury", "organic"],
    },
    "budget_allocation": {
        "total_budget": 10000,
        "creative_budget": 5000,
        "asset_generation_budget": 2000,
    },
    "creative_recommendations": {
        "priority_assets": ["product-hero", "lifestyle-scene"],
        "suggested_styles": ["minimalist", "luxury"],
        "key_messages": ["Glow naturally"],
    },
    "locale": "en",
}


@pytest.fixture
def sample_analysis():
    """A complete, valid analysis document."""
    return copy.deepcopy(SAMPLE_ANALYSIS)


@pytest.fixture
def decision_fields():
    """Factory for decision field mappings."""
    def make(category="color-palette", decision="Warm neutral palette", cost=100.0, **extra):
        fields = {
            "category": category,
            "decision": decision,
            "reasoning": "Matches the calm brand tone",
            "implementation": {"cost": cost},
        }
        fields.update(extra)
        return fields
    return make


@pytest.fixture
def memory_store():
    """Empty in-memory session store."""
    return InMemorySessionStore()


@pytest.fixture
def tracker(memory_store):
    """Decision tracker over the in-memory store."""
    return DecisionTracker(memory_store)


@pytest.fixture
def virtual_clock():
    """Deterministic clock starting at zero."""
    return VirtualClock()


@pytest.fixture
def fast_recovery_config():
    """Recovery configuration without retry backoff."""
    return RecoveryConfig(retry_backoff_min=0, retry_backoff_max=0)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    path = Path(tempfile.mkdtemp())
    yield path
    try:
        shutil.rmtree(path)
    except PermissionError:
        # On Windows, files might still be locked
        pass
