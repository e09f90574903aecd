from __future__ import annotations

from typing import Any


class FakeLocator:
    def __init__(
        self,
        *,
        count: int = 1,
        visible: bool = True,
        text: str = "",
        value: str = "",
        checked: bool = False,
        enabled: bool = True,
        aria: str = "",
    ) -> None:
        self._count = count
        self.visible = visible
        self.text = text
        self.value = value
        self.checked = checked
        self.enabled = enabled
        self.aria = aria
        self.actions: list[str] = []

    @property
    def first(self) -> FakeLocator:
        return self

    @property
    def last(self) -> FakeLocator:
        return self

    def nth(self, _index: int) -> FakeLocator:
        return self

    def or_(self, _other: FakeLocator) -> FakeLocator:
        return self

    def filter(self, **_options: Any) -> FakeLocator:
        return self

    def locator(self, _selector: str) -> FakeLocator:
        return FakeLocator(count=0, visible=False)

    def count(self) -> int:
        return self._count

    def is_visible(self, timeout: int | None = None) -> bool:
        return self.visible and self._count > 0

    def _act(self, name: str, timeout: int | None) -> None:
        if self._count == 0:
            raise TimeoutError(f"Timeout {timeout}ms exceeded.\nwaiting for locator to be {name}-able")
        self.actions.append(name)

    def click(self, timeout: int | None = None) -> None:
        self._act("click", timeout)

    def hover(self, timeout: int | None = None) -> None:
        self._act("hover", timeout)

    def press(self, key: str, timeout: int | None = None) -> None:
        self._act("press", timeout)

    def check(self, timeout: int | None = None) -> None:
        self._act("check", timeout)
        self.checked = True

    def uncheck(self, timeout: int | None = None) -> None:
        self._act("uncheck", timeout)
        self.checked = False

    def fill(self, value: str, timeout: int | None = None) -> None:
        self._act("fill", timeout)
        self.value = value

    def select_option(self, value: str | None, timeout: int | None = None) -> None:
        self._act("select", timeout)
        self.value = value or ""

    def wait_for(self, state: str = "visible", timeout: int | None = None) -> None:
        if self._count == 0 or (state == "visible" and not self.visible):
            raise TimeoutError(f"Timeout {timeout}ms exceeded.\nwaiting for locator to be {state}")

    def text_content(self, timeout: int | None = None) -> str:
        return self.text

    def input_value(self, timeout: int | None = None) -> str:
        return self.value

    def is_checked(self, timeout: int | None = None) -> bool:
        return self.checked

    def is_enabled(self, timeout: int | None = None) -> bool:
        return self.enabled

    def aria_snapshot(self, timeout: int | None = None) -> str:
        return self.aria

    def get_attribute(self, _name: str, timeout: int | None = None) -> str | None:
        return None


class FakePage:
    """Resolves locators from a ``{"role:button:Save": FakeLocator(...)}`` table."""

    def __init__(self, locators: dict[str, FakeLocator] | None = None, title: str = "Example") -> None:
        self.locators = dict(locators or {})
        self.url = "about:blank"
        self.visited: list[str] = []
        self._title = title

    def goto(self, url: str, timeout: int | None = None) -> None:
        self.visited.append(url)
        self.url = url

    def title(self) -> str:
        return self._title

    def wait_for_load_state(self, state: str = "load", timeout: int | None = None) -> None:
        return None

    def frame_locator(self, _selector: str) -> FakePage:
        return self

    def locator(self, selector: str) -> FakeLocator:
        return self._lookup(f"locator:{selector}")

    def get_by_role(self, role: str, name: Any = None, exact: bool | None = None) -> FakeLocator:
        label = getattr(name, "pattern", name)
        return self._lookup(f"role:{role}:{label}")

    def get_by_label(self, text: str, exact: bool | None = None) -> FakeLocator:
        return self._lookup(f"label:{text}")

    def get_by_text(self, text: Any, exact: bool | None = None) -> FakeLocator:
        return self._lookup(f"text:{getattr(text, 'pattern', text)}")

    def get_by_test_id(self, value: str) -> FakeLocator:
        return self._lookup(f"testid:{value}")

    def _lookup(self, key: str) -> FakeLocator:
        if key in self.locators:
            return self.locators[key]
        return FakeLocator(count=0, visible=False)
