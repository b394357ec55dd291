"""
Query action analyzer for Tamagotchat.

Decides, from the raw text alone, what should happen to an inbound message:

ACTIONS:
- manpage: the message names a shell command, send the user to its man page
- docs: the message asks how to use a CLI tool or technology, send the user
  to the official documentation
- answer: the message carries a technical signal (code, errors, jargon),
  forward it to the LLM
- google: the message is general knowledge, send the user to a search engine

RULE ORDER (first match wins, and the order is load-bearing):
1. Bash command mentioned as a whole word
2. Known CLI tool + documentation intent
3. Known technology with documentation + documentation intent
4. Technical signal (code block, syntax pattern, error pattern, technical
   keyword, or a bare command line)
5. General-knowledge pattern
6. Default to answer

Because step 4 runs before step 5, a message that carries both a technical
keyword and a trivia pattern is always answered, never redirected.

Usage:
    verdict = analyze_user_query("How to use docker")
    verdict.action      # QueryAction.DOCS
    verdict.doc_source  # "docker"
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Tuple
from urllib.parse import quote
from loguru import logger

from .models import ActionVerdict, QueryAction
from .utils import sanitize_for_logging


LMGTFY_BASE_URL = "https://letmegooglethat.com/?q="
MAN_PAGE_BASE_URL = "https://man.cx/"


def build_search_url(terms: str) -> str:
    """Build a let-me-google-that redirect for the given search terms."""
    # Same safe set as JavaScript's encodeURIComponent
    return LMGTFY_BASE_URL + quote(terms, safe="!~*'()")


def build_man_page_url(command: str) -> str:
    """Build the man page mirror URL for a shell command."""
    return MAN_PAGE_BASE_URL + quote(command, safe="")


def contains_whole_word(text_lower: str, term: str) -> bool:
    """
    Check whether ``term`` appears in ``text_lower`` as a whole word.

    A word boundary is the start or end of the string or a single space;
    punctuation glued to a word prevents a match.
    """
    term_lower = term.lower()
    return (
        text_lower == term_lower
        or text_lower.startswith(term_lower + " ")
        or text_lower.endswith(" " + term_lower)
        or (" " + term_lower + " ") in text_lower
    )


def first_whole_word(text_lower: str, terms: Iterable[str]) -> Optional[str]:
    """Return the first term of ``terms`` found as a whole word, if any."""
    for term in terms:
        if contains_whole_word(text_lower, term):
            return term
    return None


@dataclass
class ClassificationPatterns:
    """Pattern definitions for query action analysis."""

    # Programming languages, frameworks, tools and concepts
    TECHNICAL_TERMS = (
        # Programming Languages
        "javascript", "python", "java", "typescript", "c#", "c++", "ruby", "go", "rust", "php", "swift",
        "kotlin", "scala", "perl", "haskell", "clojure", "erlang", "fortran", "cobol", "bash", "powershell",
        "assembly", "matlab", "r language", "dart", "groovy", "lua", "julia", "lisp", "racket", "scheme",

        # Web Technologies
        "html", "css", "dom", "json", "xml", "ajax", "xpath", "xquery", "webassembly", "wasm",
        "rest", "graphql", "soap", "oauth", "jwt", "cors", "websocket",

        # Frameworks & Libraries
        "react", "angular", "vue", "svelte", "jquery", "ember", "backbone", "redux", "mobx", "rxjs",
        "express", "nest.js", "django", "flask", "spring", "laravel", "rails", "asp.net", "symfony",
        "tensorflow", "pytorch", "keras", "scikit-learn", "pandas", "numpy", "matplotlib",
        "bootstrap", "tailwind", "material-ui", "chakra ui", "next.js", "gatsby", "nuxt", "webpack",
        "vite", "rollup", "parcel", "babel", "jest", "mocha", "cypress", "selenium", "postman",
        "lodash", "moment", "axios", "requests", "beautiful soup", "puppeteer", "playwright",
        "node.js", "npm", "yarn", "pnpm", "pip", "conda", "maven", "gradle", "nuget",

        # Databases & Data
        "sql", "nosql", "mysql", "postgresql", "mongodb", "cassandra", "redis", "neo4j", "sqlite",
        "oracle", "mariadb", "dynamodb", "firebase", "supabase", "elasticsearch", "influxdb",
        "graphdb", "query", "index", "transaction", "acid", "orm", "dao", "dto", "hibernate",
        "sequelize", "mongoose", "prisma", "typeorm", "normalization", "denormalization",

        # Cloud & DevOps
        "aws", "azure", "gcp", "cloud", "serverless", "lambda", "ec2", "s3", "docker", "kubernetes",
        "terraform", "ansible", "jenkins", "github actions", "gitlab ci", "travis", "circleci",
        "nginx", "apache", "iis", "heroku", "vercel", "netlify", "digitalocean", "devops", "ci/cd",
        "load balancer", "cdn", "dns", "vpc", "subnet", "firewall", "api gateway", "iaas", "paas", "saas",

        # Security
        "openid", "authentication", "authorization", "csrf", "xss", "sql injection",
        "encryption", "ssl", "tls", "https", "sha", "md5", "hash", "cyber", "penetration testing",
        "ddos", "vpn", "proxy", "reverse proxy", "waf",

        # Development Concepts
        "algorithm", "data structure", "api", "sdk", "ide", "compiler", "interpreter", "runtime",
        "debug", "breakpoint", "stack trace", "exception", "error handling", "memory leak",
        "garbage collection", "thread", "async", "promise", "callback", "concurrency", "parallelism",
        "deadlock", "race condition", "mutex", "semaphore", "singleton", "factory", "observer",
        "design pattern", "solid", "dependency injection", "inversion of control", "middleware",
        "service", "controller", "model", "view", "repository", "facade", "memoization",
        "big o notation", "time complexity", "space complexity", "recursion", "iteration",
        "object-oriented", "functional programming", "immutable", "higher-order function",
        "closure", "monorepo", "microservice", "monolith", "backend", "frontend", "fullstack",

        # Operating Systems
        "linux", "unix", "macos", "windows", "ubuntu", "debian", "redhat", "centos", "alpine",
        "arch", "fedora", "suse", "cmd", "terminal", "shell", "kernel",
    )

    # Command line tools with documentation links, checked in this order
    COMMAND_LINE_TOOLS = {
        "npm": "https://docs.npmjs.com/cli/commands/",
        "yarn": "https://yarnpkg.com/cli/",
        "pip": "https://pip.pypa.io/en/stable/cli/",
        "git": "https://git-scm.com/docs/",
        "docker": "https://docs.docker.com/engine/reference/commandline/",
        "kubectl": "https://kubernetes.io/docs/reference/kubectl/",
        "terraform": "https://developer.hashicorp.com/terraform/cli",
        "aws": "https://awscli.amazonaws.com/v2/documentation/api/latest/index.html",
        "gcloud": "https://cloud.google.com/sdk/gcloud/reference",
        "az": "https://learn.microsoft.com/en-us/cli/azure/reference-index",
    }

    # Linux/Unix commands that redirect to man pages
    BASH_COMMANDS = (
        "ls", "cd", "mkdir", "touch", "cp", "mv", "rm", "chmod", "chown", "grep",
        "find", "sed", "awk", "cat", "less", "more", "head", "tail", "sort", "uniq",
        "wc", "diff", "ssh", "scp", "rsync", "curl", "wget", "tar", "zip", "unzip",
        "ps", "top", "kill", "systemctl", "journalctl", "df", "du", "free", "ifconfig",
        "ip", "netstat", "ping", "traceroute", "nslookup", "dig", "cron", "useradd",
        "usermod", "passwd", "sudo", "su", "which", "alias", "echo", "env", "export",
    )

    # Documentation links for popular technologies, checked in this order
    DOCUMENTATION_LINKS = {
        "javascript": "https://developer.mozilla.org/en-US/docs/Web/JavaScript",
        "python": "https://docs.python.org/3/",
        "java": "https://docs.oracle.com/en/java/",
        "typescript": "https://www.typescriptlang.org/docs/",
        "react": "https://reactjs.org/docs/getting-started.html",
        "angular": "https://angular.io/docs",
        "vue": "https://vuejs.org/guide/introduction.html",
        "node.js": "https://nodejs.org/en/docs/",
        "django": "https://docs.djangoproject.com/",
        "flask": "https://flask.palletsprojects.com/",
        "spring": "https://spring.io/guides",
        "mongodb": "https://docs.mongodb.com/",
        "mysql": "https://dev.mysql.com/doc/",
        "postgresql": "https://www.postgresql.org/docs/",
        "docker": "https://docs.docker.com/",
        "kubernetes": "https://kubernetes.io/docs/home/",
        "aws": "https://docs.aws.amazon.com/",
        "azure": "https://learn.microsoft.com/en-us/azure/",
        "gcp": "https://cloud.google.com/docs",
        "linux": "https://www.kernel.org/doc/html/latest/",
        "bash": "https://www.gnu.org/software/bash/manual/bash.html",
        "css": "https://developer.mozilla.org/en-US/docs/Web/CSS",
        "html": "https://developer.mozilla.org/en-US/docs/Web/HTML",
    }

    # Declarations and syntax across several language families
    CODE_PATTERNS = (
        r'function\s+\w+\s*\([^)]*\)\s*\{',             # JS/TS function
        r'const\s+\w+\s*=\s*\([^)]*\)\s*=>',             # arrow function
        r'\b(?:var|let|const)\s+\w+\s*=',                # variables
        r'\b(?:if|for|while|switch|try|catch)\s*\(',     # control structures
        r'\b(?:class|interface|type|enum)\s+\w+',        # type declarations
        r'\b(?:import|export|require)\b',                # imports
        r'\bdef\s+\w+\s*\([^)]*\):',                     # python function
        r'\bclass\s+\w+\s*(?:\([^)]*\))?:',              # python class
        r'\b(?:SELECT|UPDATE|DELETE|INSERT|FROM|WHERE|JOIN)\b',  # SQL
        r'</?[a-z][\s\S]*?>',                            # HTML tags
        r'\{\s*["\']\w+["\']\s*:',                       # JSON-like
        r'(?m)^[\w-]+:\s+.+$',                           # YAML-like
    )

    # Exception names, HTTP status codes and OS error codes
    ERROR_PATTERNS = (
        r'\b(?:error|exception|failed|undefined|null reference|NaN|cannot|not found|syntax error)\b',
        r'\b(?:TypeError|ReferenceError|SyntaxError|RangeError|EvalError|URIError)\b',
        r'\b(?:status code|404|500|403|401|ENOENT|EACCES|ETIMEDOUT)\b',
    )

    # General knowledge, more likely answered by a search engine
    NON_TECHNICAL_PATTERNS = (
        # News/events/weather
        r'\b(?:news|weather|forecast|what happened|who won|when is|where is)\b',
        # Entertainment
        r'\b(?:movie|song|tv show|actor|actress|singer|celebrity|book|author)\b',
        # Facts and trivia
        r'\b(?:tallest|longest|biggest|smallest|fastest|capital of|population of|distance between)\b',
        # Health and lifestyle
        r'\b(?:symptoms of|how to cure|diet|exercise|workout|recipe|how to make|how to cook)\b',
        # Shopping and products
        r'\b(?:where to buy|how much is|price of|best|review|vs|versus|compared to)\b',
        # Travel and locations
        r'\b(?:hotel|flight|ticket|restaurant|address|direction|map)\b',
        # People and history
        r'\b(?:who is|who was|when did|when was|history of|biography)\b',
        # Simple factual questions
        r'^(?:what|who|where|when|how) (?:is|are|was|were|did) ',
    )

    # Documentation intent
    DOC_PATTERNS = (
        r'\bhow to use\b',
        r'\bhow to install\b',
        r'\bsyntax for\b',
        r'\bexample of\b',
        r'\bapi reference\b',
        r'\bdocumentation for\b',
        r'\bwhat is the syntax\b',
        r'\bfeatures of\b',
        r'\bguide\b',
        r'\btutorial\b',
        r'\bhelp with\b',
    )

    # A bare command line: plain words, optionally followed by flags
    COMMAND_LINE_PATTERN = r'^\s*[a-z0-9_-]+(?:\s+[a-z0-9_-]+)*(?:\s+-{1,2}[a-z0-9_-]+)*\s*$'

    CODE_BLOCK_PATTERN = r'```[\s\S]*?```'


def _compile(patterns: Iterable[str]) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Compiled once at import time, shared read-only by every request
_PATTERNS = ClassificationPatterns()
_CODE_PATTERNS = _compile(_PATTERNS.CODE_PATTERNS)
_ERROR_PATTERNS = _compile(_PATTERNS.ERROR_PATTERNS)
_NON_TECHNICAL_PATTERNS = _compile(_PATTERNS.NON_TECHNICAL_PATTERNS)
_DOC_PATTERNS = _compile(_PATTERNS.DOC_PATTERNS)
_COMMAND_LINE = re.compile(_PATTERNS.COMMAND_LINE_PATTERN, re.IGNORECASE)
_CODE_BLOCK = re.compile(_PATTERNS.CODE_BLOCK_PATTERN)


class QueryActionAnalyzer:
    """Applies the ordered action rules to a user query."""

    def __init__(self, patterns: Optional[ClassificationPatterns] = None):
        self.patterns = patterns or _PATTERNS

    def detect_bash_command(self, query: str) -> Optional[str]:
        """Return the first bash command mentioned as a whole word."""
        return first_whole_word(query.lower(), self.patterns.BASH_COMMANDS)

    def detect_command_line_tool(self, query: str) -> Optional[str]:
        """Return the first known CLI tool mentioned as a whole word."""
        return first_whole_word(query.lower(), self.patterns.COMMAND_LINE_TOOLS)

    def detect_documented_technology(self, query: str) -> Optional[str]:
        """Return the first technology with a documentation link."""
        return first_whole_word(query.lower(), self.patterns.DOCUMENTATION_LINKS)

    def has_doc_intent(self, query: str) -> bool:
        return any(p.search(query) for p in _DOC_PATTERNS)

    def has_code_block(self, query: str) -> bool:
        return bool(_CODE_BLOCK.search(query))

    def has_code_pattern(self, query: str) -> bool:
        return any(p.search(query) for p in _CODE_PATTERNS)

    def has_error_pattern(self, query: str) -> bool:
        return any(p.search(query) for p in _ERROR_PATTERNS)

    def detect_technical_terms(self, query: str) -> List[str]:
        """
        Detect technical terms in the query.

        Args:
            query: User query to analyze

        Returns:
            List of detected technical terms, in table order
        """
        query_lower = query.lower()
        return [t for t in self.patterns.TECHNICAL_TERMS if contains_whole_word(query_lower, t)]

    def is_command_line(self, query: str) -> bool:
        return bool(_COMMAND_LINE.match(query))

    def has_non_technical_pattern(self, query: str) -> bool:
        return any(p.search(query) for p in _NON_TECHNICAL_PATTERNS)

    def technical_signals(self, query: str) -> Dict[str, bool]:
        """Evaluate every technical signal of rule 4."""
        return {
            "code_block": self.has_code_block(query),
            "code_pattern": self.has_code_pattern(query),
            "error_pattern": self.has_error_pattern(query),
            "technical_term": bool(self.detect_technical_terms(query)),
            "command_line": self.is_command_line(query),
        }

    def analyze(self, query: str) -> ActionVerdict:
        """
        Decide the action for a query. Pure function of the text.

        Args:
            query: Raw user message

        Returns:
            ActionVerdict for the first rule that matched
        """
        clean_query = query.strip()

        # 1. Bash command
        command = self.detect_bash_command(clean_query)
        if command:
            return ActionVerdict(
                action=QueryAction.MANPAGE,
                command=command,
                redirect_url=build_man_page_url(command)
            )

        doc_intent = self.has_doc_intent(clean_query)

        # 2. Command line tool + documentation intent
        if doc_intent:
            tool = self.detect_command_line_tool(clean_query)
            if tool:
                return ActionVerdict(
                    action=QueryAction.DOCS,
                    redirect_url=self.patterns.COMMAND_LINE_TOOLS[tool],
                    doc_source=tool
                )

        # 3. Technology with docs + documentation intent
        if doc_intent:
            technology = self.detect_documented_technology(clean_query)
            if technology:
                return ActionVerdict(
                    action=QueryAction.DOCS,
                    redirect_url=self.patterns.DOCUMENTATION_LINKS[technology],
                    doc_source=technology
                )

        # 4. Technical signal
        signals = self.technical_signals(clean_query)
        if any(signals.values()):
            logger.debug("Technical signal detected",
                         signals=[name for name, hit in signals.items() if hit])
            return ActionVerdict(action=QueryAction.ANSWER)

        # 5. General knowledge
        if self.has_non_technical_pattern(clean_query):
            return ActionVerdict(
                action=QueryAction.GOOGLE,
                redirect_url=build_search_url(clean_query)
            )

        # 6. Benefit of the doubt
        return ActionVerdict(action=QueryAction.ANSWER)


_analyzer = QueryActionAnalyzer()


def analyze_user_query(query: str) -> ActionVerdict:
    """Analyze a query with the shared analyzer and log the decision."""
    verdict = _analyzer.analyze(query)
    logger.info(
        "Query action decided",
        action=verdict.action.value,
        doc_source=verdict.doc_source,
        command=verdict.command,
        query_preview=sanitize_for_logging(query, 80)
    )
    return verdict


__all__ = [
    "ClassificationPatterns",
    "QueryActionAnalyzer",
    "analyze_user_query",
    "build_search_url",
    "build_man_page_url",
    "contains_whole_word",
]
