import re

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    template: str = "gh:almodheshplus/ignite-json"
    kv_file: str = "kv.json"
    default_project_name: str = "ignite-json"
    default_json_db: str = "db.json"
    package_managers: list[str] = Field(default_factory=lambda: ["npm", "bun", "pnpm", "yarn"])
    fallback_package_manager: str = "npm"
    auth_marker: str = "link to authenticate"
    deploy_url_pattern: str = r"https://\S+\.dev\b"
    dashboard_hint: str = (
        "Check [ Workers & Pages ] section in Cloudflare dashboard you may find it there."
    )

    @model_validator(mode="after")
    def _validate_settings(self) -> "Settings":
        if not self.package_managers:
            raise ValueError("At least one package manager must be listed.")
        if self.fallback_package_manager not in self.package_managers:
            raise ValueError(
                f"fallback_package_manager '{self.fallback_package_manager}' "
                "is not in package_managers."
            )
        if ":" not in self.template:
            raise ValueError("template must look like <provider>:<location>.")
        try:
            re.compile(self.deploy_url_pattern)
        except re.error as exc:
            raise ValueError(f"deploy_url_pattern is not a valid regex: {exc}") from exc
        return self
