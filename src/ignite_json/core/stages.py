from __future__ import annotations

from dataclasses import dataclass

from ignite_json.config.model import Settings
from ignite_json.core.scraper import marker_pattern

SUPPRESSED = "suppressed"
PASSTHROUGH = "passthrough"
SCRAPED = "scraped"


@dataclass(frozen=True)
class OutputPolicy:
    kind: str = SUPPRESSED
    pattern: str | None = None
    settle_on_match: bool = True

    def __post_init__(self) -> None:
        if self.kind not in {SUPPRESSED, PASSTHROUGH, SCRAPED}:
            raise ValueError(f"Unknown output policy: {self.kind}")
        if self.kind == SCRAPED and not self.pattern:
            raise ValueError("scraped output policy requires a pattern")

    @classmethod
    def suppressed(cls) -> "OutputPolicy":
        return cls(kind=SUPPRESSED)

    @classmethod
    def passthrough(cls) -> "OutputPolicy":
        return cls(kind=PASSTHROUGH)

    @classmethod
    def scraped(cls, pattern: str, *, settle_on_match: bool = True) -> "OutputPolicy":
        return cls(kind=SCRAPED, pattern=pattern, settle_on_match=settle_on_match)


@dataclass(frozen=True)
class Stage:
    name: str
    label: str
    command: str
    args: tuple[str, ...] = ()
    policy: OutputPolicy = OutputPolicy()
    # args printed in the manual steps when they differ from the spawned ones
    manual_args: tuple[str, ...] | None = None

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]

    @property
    def display(self) -> str:
        return " ".join(self.argv)

    @property
    def manual_display(self) -> str:
        if self.manual_args is None:
            return self.display
        return " ".join([self.command, *self.manual_args])


CREATE_STAGES = [
    ("resolve_package_manager", "Resolve package manager"),
    ("validate_inputs", "Validate inputs"),
    ("fetch_template", "Download ignite-json template"),
    ("prepare_kv", "Prepare Cloudflare Workers KV database"),
]

DEPLOY_STAGES = [
    ("install", "Install dependencies"),
    ("login", "Cloudflare login"),
    ("create-db", "Create remote KV database"),
    ("cf-typegen", "Generate types"),
    ("push-db", "Push data to remote KV database"),
    ("deploy", "Deploy to Cloudflare Workers"),
]

DEPLOY_LABELS = dict(DEPLOY_STAGES)


def deploy_stages(package_manager: str, project_name: str, settings: Settings | None = None) -> list[Stage]:
    settings = settings or Settings()
    pm = package_manager
    return [
        Stage("install", DEPLOY_LABELS["install"], pm, ("install",)),
        Stage(
            "login",
            DEPLOY_LABELS["login"],
            pm,
            ("run", "login"),
            OutputPolicy.scraped(marker_pattern(settings.auth_marker), settle_on_match=False),
        ),
        Stage("create-db", DEPLOY_LABELS["create-db"], pm, ("run", "create-db", project_name)),
        Stage("cf-typegen", DEPLOY_LABELS["cf-typegen"], pm, ("run", "cf-typegen")),
        Stage("push-db", DEPLOY_LABELS["push-db"], pm, ("run", "push-db")),
        Stage(
            "deploy",
            DEPLOY_LABELS["deploy"],
            pm,
            ("run", "deploy", project_name.lower()),
            OutputPolicy.scraped(settings.deploy_url_pattern),
            manual_args=("run", "deploy", project_name),
        ),
    ]


def manual_commands(project_name: str, stages: list[Stage]) -> list[str]:
    return [f"cd {project_name}", *(stage.manual_display for stage in stages)]
