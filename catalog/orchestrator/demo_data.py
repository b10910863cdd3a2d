"""Demo catalog used when no SQL document store is configured."""

from datetime import datetime, timedelta, timezone
from typing import Any

_BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)

_AGENT_TEMPLATES = [
    ("Lead Enrichment Agent", "Business", "Enrich inbound leads with company data", "beginner", ["HubSpot", "Clearbit"]),
    ("Blog Post Writer", "Writing", "Drafts SEO-friendly blog posts from an outline", "intermediate", ["OpenAI", "WordPress"]),
    ("Invoice Parser", "Finance", "Extracts line items from PDF invoices", "advanced", ["Google Drive", "Xero"]),
    ("Support Triage Bot", "Customer Support", "Routes tickets by urgency and topic", "intermediate", ["Zendesk", "Slack"]),
    ("Social Scheduler", "Marketing", "Schedules posts across social platforms", "beginner", ["Buffer", "Airtable"]),
    ("Meeting Summarizer", "Productivity", "Turns call transcripts into action items", "intermediate", ["Zoom", "Notion"]),
]

_PROMPT_TEMPLATES = [
    ("Cold Email Opener", "Writing", ["email", "sales"]),
    ("Product Description", "Marketing", ["ecommerce", "copywriting"]),
    ("Code Reviewer", "Development", ["code", "review"]),
    ("Interview Coach", "Career", ["interview", "practice"]),
]

_VIDEO_TEMPLATES = [
    ("Build an n8n workflow in 10 minutes", "YouTube", "Automation Academy"),
    ("Prompt engineering basics", "YouTube", "AI Explained"),
    ("Zapier vs Make", "Vimeo", "No-Code Weekly"),
]


def _agent(i: int) -> dict[str, Any]:
    title, category, description, complexity, integrations = _AGENT_TEMPLATES[i % len(_AGENT_TEMPLATES)]
    price = float((i % 5) * 10)
    return {
        "id": f"agent-{i + 1:03d}",
        "name": f"{title} {i + 1}",
        "title": f"{title} {i + 1}",
        "description": description,
        "category": category,
        "categories": [category] if i % 4 else [category, "AI"],
        "businessValue": f"Saves hours every week on {category.lower()} work",
        "features": ["Ready to import", "Documented"],
        "tags": [category.lower(), complexity],
        "workflowMetadata": {"complexity": complexity, "integrations": integrations},
        "deliverables": [{"fileName": f"workflow-{i + 1}.json", "description": f"{title} workflow export"}],
        "price": price,
        "priceDetails": {"basePrice": price, "discountedPrice": price, "currency": "USD",
                         "isSubscription": False, "isFree": price == 0, "discountPercentage": 0},
        "isVerified": i % 2 == 0,
        "isFeatured": i % 5 == 0,
        "likes": [],
        "viewCount": i * 7,
        "downloadCount": i * 3,
        "createdAt": (_BASE_TIME + timedelta(days=i)).isoformat(),
    }


def _prompt(i: int) -> dict[str, Any]:
    title, category, keywords = _PROMPT_TEMPLATES[i % len(_PROMPT_TEMPLATES)]
    return {
        "id": f"prompt-{i + 1:03d}",
        "name": f"{title} {i + 1}",
        "title": f"{title} {i + 1}",
        "description": f"A reusable prompt for {keywords[0]}",
        "category": category,
        "categories": [category],
        "keywords": keywords,
        "tags": keywords,
        "price": 0.0,
        "isVerified": True,
        "isFeatured": i % 3 == 0,
        "createdAt": (_BASE_TIME + timedelta(days=i, hours=6)).isoformat(),
    }


def _video(i: int) -> dict[str, Any]:
    title, platform, author = _VIDEO_TEMPLATES[i % len(_VIDEO_TEMPLATES)]
    return {
        "id": f"video-{i + 1:03d}",
        "title": f"{title} (part {i + 1})",
        "description": f"{author} walks through {title.lower()}",
        "authorName": author,
        "platform": platform,
        "tags": ["tutorial"],
        "isFeatured": i % 4 == 0,
        "createdAt": (_BASE_TIME + timedelta(days=i, hours=12)).isoformat(),
    }


_BUILDERS = {"agents": _agent, "prompts": _prompt, "videos": _video}


def demo_documents(collection: str, count: int) -> list[dict[str, Any]]:
    """Deterministic seed documents for one collection."""
    builder = _BUILDERS.get(collection)
    if builder is None:
        return []
    return [builder(i) for i in range(max(count, 0))]
