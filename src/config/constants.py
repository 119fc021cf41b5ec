"""Constants for the configuration module."""

from src.store.models import Topic


# Log component names
COMPONENT_CONFIG = "config"
COMPONENT_CLI = "cli"

# Supported URL schemes
VALID_URL_SCHEMES = ("http://", "https://")

# Lexicon used when the pipeline config does not override a topic.
# Values are (keywords, salience).
DEFAULT_TOPIC_LEXICON: dict[Topic, tuple[list[str], float]] = {
    Topic.TECHNOLOGY: (
        ["technology", "software", "hardware", "chip", "semiconductor", "smartphone"],
        0.5,
    ),
    Topic.POLITICS: (
        ["election", "parliament", "congress", "senate", "legislation", "minister"],
        0.6,
    ),
    Topic.FINANCE: (
        ["stock", "market", "interest rate", "inflation", "earnings", "bond", "fed"],
        0.6,
    ),
    Topic.AI: (
        [
            "artificial intelligence",
            "machine learning",
            "llm",
            "language model",
            "neural network",
            "openai",
            "anthropic",
            "ai",
        ],
        0.8,
    ),
    Topic.CLOUD: (
        ["cloud", "aws", "azure", "gcp", "kubernetes", "serverless"],
        0.6,
    ),
    Topic.CYBERSECURITY: (
        ["vulnerability", "ransomware", "breach", "exploit", "cve", "malware", "zero-day"],
        0.9,
    ),
    Topic.WEB3: (
        ["blockchain", "crypto", "bitcoin", "ethereum", "web3", "defi", "nft"],
        0.4,
    ),
    Topic.DEVOPS: (
        ["devops", "ci/cd", "docker", "terraform", "observability", "sre"],
        0.5,
    ),
    Topic.SPORTS: (
        ["match", "tournament", "league", "championship", "olympic", "world cup"],
        0.3,
    ),
    Topic.STARTUPS: (
        ["startup", "funding round", "series a", "seed round", "venture capital", "ipo"],
        0.5,
    ),
    Topic.SCIENCE: (
        ["research", "study", "scientists", "physics", "biology", "nasa", "climate"],
        0.5,
    ),
    Topic.BUSINESS: (
        ["acquisition", "merger", "revenue", "ceo", "layoffs", "company"],
        0.5,
    ),
    Topic.GEOPOLITICS: (
        ["sanctions", "diplomacy", "war", "treaty", "nato", "border", "tariff"],
        0.7,
    ),
}
