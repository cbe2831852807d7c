"""
Deterministic offline substitutes used when no provider key can serve a call.

Nothing here touches the network; the same input always yields the same output.
"""

import json
import re
from typing import Any, Dict, List, Optional

from mvp_planner_server.providers import ImageSearchRequest, TextGenerationRequest


TECH_STACKS = {
    "Food & Beverage": {
        "frontend": "React Native for mobile app",
        "backend": "Node.js with Express",
        "database": "PostgreSQL",
        "payment": "Stripe for payments",
        "hosting": "Digital Ocean or AWS",
    },
    "E-commerce": {
        "frontend": "Next.js or Shopify",
        "backend": "Node.js with Express",
        "database": "PostgreSQL",
        "payment": "Stripe or PayPal",
        "hosting": "Vercel or AWS",
    },
    "SaaS": {
        "frontend": "React with TypeScript",
        "backend": "Node.js or Python Django",
        "database": "PostgreSQL",
        "payment": "Stripe Billing",
        "hosting": "AWS or Google Cloud",
    },
    "Health & Fitness": {
        "frontend": "React Native for mobile app",
        "backend": "Node.js with Express",
        "database": "PostgreSQL",
        "payment": "Stripe for subscriptions",
        "hosting": "AWS or Digital Ocean",
    },
    "default": {
        "frontend": "React with TypeScript",
        "backend": "Node.js with Express",
        "database": "PostgreSQL",
        "payment": "Stripe",
        "hosting": "Vercel or Railway",
    },
}

TIMELINES = {
    "low": {"mvp": "8-12 weeks", "launch": "3-4 months", "growth": "6-12 months"},
    "medium": {"mvp": "6-10 weeks", "launch": "2-3 months", "growth": "4-8 months"},
    "high": {"mvp": "4-8 weeks", "launch": "1-2 months", "growth": "3-6 months"},
}

COSTS = {
    "low": {"development": "$8,000 - $15,000", "monthly": "$200 - $500"},
    "medium": {"development": "$15,000 - $35,000", "monthly": "$500 - $1,500"},
    "high": {"development": "$35,000 - $75,000", "monthly": "$1,500 - $5,000"},
}

INDUSTRY_FEATURES = {
    "Health & Fitness": [
        "User profile with health metrics tracking",
        "Workout planning and scheduling system",
        "Progress tracking with charts and analytics",
        "AI-powered personalized recommendations",
        "Social features for community engagement",
        "Integration with wearable devices",
        "Video content library for exercises",
        "Goal setting and achievement system",
    ],
    "E-commerce": [
        "Product catalog with search and filters",
        "Shopping cart and checkout system",
        "User accounts and order history",
        "Payment processing integration",
        "Inventory management dashboard",
        "Customer review and rating system",
        "Email notifications and order tracking",
    ],
    "default": [
        "User registration and authentication system",
        "Intuitive user dashboard and interface",
        "Mobile-responsive design for all devices",
        "Basic analytics and user behavior tracking",
        "Search and filtering capabilities",
        "Admin panel for content management",
    ],
}

NEXT_STEPS = [
    "Conduct user interviews to validate the concept",
    "Create detailed wireframes and user flows",
    "Set up development environment and basic infrastructure",
    "Build core MVP features in priority order",
    "Test with beta users and gather feedback",
    "Prepare for launch with marketing and support systems",
]

STOP_WORDS = {
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "how", "what", "why", "when", "where",
}

SECTION_KEYWORDS = [
    "startup+office", "technology+innovation", "business+meeting",
    "mobile+app+development", "team+collaboration", "digital+transformation",
    "entrepreneurship", "product+development", "user+experience",
]


def budget_tier(budget: str) -> str:
    """Map a budget range label to low/medium/high."""
    if "$10,000" in budget:
        return "low"
    if "$50,000" in budget:
        return "medium"
    return "high"


def build_fallback_plan(
    idea: str,
    industry: str = "",
    target_audience: str = "",
    budget: str = "",
) -> Dict[str, Any]:
    """
    Build a templated MVP plan from the request fields alone.

    The result has the same shape as a provider-generated plan and echoes
    the idea back in `idea` and in the first core feature.
    """
    industry = industry or "Technology"
    target_audience = target_audience or "Early adopters"
    tier = budget_tier(budget or "")

    features = INDUSTRY_FEATURES.get(industry, INDUSTRY_FEATURES["default"])
    core_feature = f"Core functionality for: {idea}" if idea else "Core functionality tailored to your business idea"

    return {
        "idea": idea,
        "coreFeatures": [core_feature] + list(features),
        "techStack": dict(TECH_STACKS.get(industry, TECH_STACKS["default"])),
        "monetizationStrategy": (
            f"For {industry.lower()}, consider: subscription model for recurring revenue, "
            "transaction fees if marketplace, freemium model to attract users, and premium "
            "features for advanced functionality."
        ),
        "timeline": dict(TIMELINES[tier]),
        "estimatedCost": dict(COSTS[tier]),
        "marketAnalysis": {
            "targetMarket": (
                f"{target_audience} represents a growing market segment with increasing "
                "demand for digital solutions"
            ),
            "competition": (
                f"{industry} has established players but room for innovation and niche positioning"
            ),
            "opportunity": (
                "Focus on unique value proposition and superior user experience to differentiate"
            ),
        },
        "nextSteps": list(NEXT_STEPS),
    }


def fallback_content(request: TextGenerationRequest) -> str:
    """Fallback for content generation: the templated plan or blog post as JSON text."""
    ctx = request.context or {}
    if ctx.get("kind") == "blog":
        links = json.loads(ctx.get("affiliate_links") or "[]")
        return json.dumps(build_fallback_blog_post(ctx.get("topic", ""), links), indent=2)

    plan = build_fallback_plan(
        idea=ctx.get("idea", ""),
        industry=ctx.get("industry", ""),
        target_audience=ctx.get("target_audience", ""),
        budget=ctx.get("budget", ""),
    )
    return json.dumps(plan, indent=2)


def clean_search_term(term: str) -> str:
    """Lowercase, strip punctuation and join words with '+'."""
    cleaned = re.sub(r"[^a-z0-9\s+]", "", term.lower())
    return re.sub(r"[\s+]+", "+", cleaned).strip("+")


def extract_search_terms(topic: str) -> List[str]:
    """Up to five descriptive words (longer than 3 chars, not stop words)."""
    words = re.sub(r"[^\w\s]", "", topic.lower()).split()
    return [w for w in words if len(w) > 3 and w not in STOP_WORDS][:5]


def static_image_url(term: str, width: int = 1200, height: int = 600) -> str:
    """Keyless image URL for a search term."""
    term = clean_search_term(term) or "business"
    return f"https://images.unsplash.com/{width}x{height}/?{term}&auto=format&fit=crop&q=80"


def fallback_image_url(request: ImageSearchRequest) -> str:
    """Fallback for image search."""
    return static_image_url(request.query, request.width, request.height)


def section_image_urls(topic: str, count: int = 3, width: int = 800, height: int = 400) -> List[str]:
    """Offline section images: topic terms first, then stock keywords."""
    terms = extract_search_terms(topic)
    urls = []
    for i in range(count):
        if i < len(terms):
            keyword = terms[i]
        elif i < len(SECTION_KEYWORDS):
            keyword = SECTION_KEYWORDS[i]
        else:
            keyword = "business"
        urls.append(static_image_url(keyword, width, height))
    return urls


BLOG_AUTHOR = "MVP Generator AI Team"

BLOG_SECTIONS = [
    (
        "Start with the problem",
        "Before writing a line of code, talk to the people who have the problem. "
        "Five honest conversations will tell you more than a month of guessing.",
    ),
    (
        "Cut the scope",
        "An MVP is the smallest thing that proves people want what you are building. "
        "List every feature you have in mind, then keep the one your users cannot live without.",
    ),
    (
        "Pick boring technology",
        "Use tools your team already knows. Hosted databases, managed auth and a mainstream "
        "web framework get you to launch faster than anything new and exciting.",
    ),
    (
        "Measure what matters",
        "Decide up front which number tells you the MVP worked: sign-ups, retention after a week, "
        "or the first paying customer. Track that and ignore the rest for now.",
    ),
]


def slugify(text: str) -> str:
    """URL-friendly slug: lowercase words joined by hyphens."""
    slug = re.sub(r"[^a-z0-9\s-]", "", text.lower())
    return re.sub(r"[\s-]+", "-", slug).strip("-") or "post"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def build_fallback_blog_post(topic: str, affiliate_links: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
    """
    Build a templated blog post for a topic.

    Same shape as a provider-generated post. Affiliate links, when given,
    are listed in a closing "Recommended tools" section.
    """
    topic = topic.strip() or "Building Your MVP"

    parts = [
        f"# {topic}",
        f"Every founder who works on {topic.lower()} runs into the same question: "
        "what is the least we can build to learn the most? Here is a practical way to answer it.",
    ]
    for heading, body in BLOG_SECTIONS:
        parts.append(f"## {heading}\n\n{body}")
    if affiliate_links:
        links = "\n".join(f"- [{link['text']}]({link['url']})" for link in affiliate_links)
        parts.append(f"## Recommended tools\n\n{links}")
    parts.append(
        "## Takeaways\n\n"
        "Talk to users early, ship the smallest useful version and let real usage decide what comes next."
    )

    keywords = extract_search_terms(topic)
    for extra in ("mvp", "startup", "product development", "validation", "launch"):
        if len(keywords) >= 5:
            break
        if extra not in keywords:
            keywords.append(extra)

    excerpt = (
        f"A practical guide to {topic.lower()}. "
        "Learn how to validate, scope and launch an MVP without wasting your budget."
    )
    return {
        "title": topic,
        "slug": slugify(topic),
        "excerpt": excerpt,
        "content": "\n\n".join(parts),
        "metaTitle": _truncate(topic, 60),
        "metaDescription": _truncate(excerpt, 160),
        "keywords": keywords,
        "author": BLOG_AUTHOR,
    }
