"""
Technical domains and keywords used by the domain filter.

The lists are also embedded in the tier-2 classifier prompt, so keep them
readable: one concept per entry, lowercase.
"""

import re
from typing import List, Pattern, Tuple


TECHNICAL_DOMAINS: Tuple[str, ...] = (
    "programming",
    "software development",
    "computer science",
    "web development",
    "databases",
    "networking",
    "cybersecurity",
    "operating systems",
    "artificial intelligence",
    "machine learning",
    "data science",
    "cloud computing",
    "devops",
    "system administration",
    "it infrastructure",
    "hardware",
    "software engineering",
    "algorithms",
    "data structures",
    "computer architecture",
    "programming languages",
    "version control",
    "computer graphics",
    "game development",
    "mobile development",
    "embedded systems",
    "robotics",
    "automation",
)

TECHNICAL_KEYWORDS: Tuple[str, ...] = (
    # Languages
    "javascript", "python", "java", "c++", "c#", "php", "ruby", "go", "rust", "swift",
    "kotlin", "typescript", "html", "css", "sql", "bash", "shell", "powershell", "perl",
    "scala", "r", "matlab", "assembly", "fortran", "cobol", "lisp", "haskell", "erlang",

    # Frameworks & Libraries
    "react", "angular", "vue", "node", "express", "django", "flask", "spring", "laravel",
    "rails", "pytorch", "tensorflow", "keras", "pandas", "numpy", "scikit-learn", "matplotlib",
    "bootstrap", "jquery", "next.js", "gatsby", "svelte", "tailwind", "redux", "dotnet",

    # Databases
    "mysql", "postgresql", "mongodb", "nosql", "database", "oracle", "sqlite",
    "mariadb", "redis", "cassandra", "elasticsearch", "neo4j", "dynamodb", "firestore",

    # Development concepts
    "api", "rest", "graphql", "json", "xml", "ajax", "http", "https", "websocket",
    "algorithm", "data structure", "interface", "inheritance", "polymorphism", "encapsulation",
    "abstraction", "function", "variable", "class", "object", "method", "recursion",
    "iteration", "loop", "conditional", "asynchronous", "synchronous", "thread", "process",
    "compile", "runtime", "debug", "exception", "error", "stack", "heap", "memory",

    # Tools & Systems
    "git", "github", "gitlab", "bitbucket", "docker", "kubernetes", "jenkins", "ci/cd",
    "linux", "unix", "windows", "macos", "ubuntu", "debian", "fedora", "centos",
    "apache", "nginx", "iis", "ssh", "ftp", "aws", "azure", "gcp", "terminal", "command line",

    # Technical components
    "server", "client", "frontend", "backend", "full-stack", "microservice", "monolith",
    "middleware", "cache", "load balancer", "proxy", "cdn", "dns", "domain", "hosting",
    "repository", "webhook", "firewall", "vpn", "router", "switch", "gateway", "protocol",
)

# Words that flag a troubleshooting question on their own
TROUBLESHOOTING_WORDS: Tuple[str, ...] = ("error", "bug", "exception")


def _keyword_pattern(keyword: str) -> Pattern:
    # Lookarounds instead of \b so "c++" and "c#" still match
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", re.IGNORECASE)


_KEYWORD_PATTERNS: Tuple[Pattern, ...] = tuple(_keyword_pattern(k) for k in TECHNICAL_KEYWORDS)


def find_technical_keywords(text: str) -> List[str]:
    """Return every technical keyword present in ``text`` as a whole word."""
    return [
        keyword for keyword, pattern in zip(TECHNICAL_KEYWORDS, _KEYWORD_PATTERNS)
        if pattern.search(text)
    ]


def contains_technical_keywords(text: str) -> bool:
    return any(pattern.search(text) for pattern in _KEYWORD_PATTERNS)


def is_likely_technical(question: str) -> bool:
    """
    Cheap check run before the LLM classifier.

    True when the question names a technical keyword, asks "how to" about a
    technical domain, or mentions an error, bug or exception.
    """
    if contains_technical_keywords(question):
        return True

    question_lower = question.lower()

    if "how to" in question_lower and any(domain in question_lower for domain in TECHNICAL_DOMAINS):
        return True

    if any(word in question_lower for word in TROUBLESHOOTING_WORDS):
        return True

    return False
