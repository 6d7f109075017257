"""交互式主菜单

渲染层只负责把用户输入翻译为 MenuEvent，状态迁移完全交给 core.menu.transition。
"""

from __future__ import annotations

import logging

import questionary
from rich.panel import Panel
from rich.table import Table

from provisioner.cli.prompts import (
    PROMPT_STYLE,
    QuestionaryGate,
    confirm,
    console,
    print_log,
    print_report,
    print_result,
)
from provisioner.core.config_store import is_secret_key
from provisioner.core.exceptions import ConfigError
from provisioner.core.menu import (
    MAIN_MENU,
    MenuEvent,
    MenuState,
    is_terminal,
    transition,
)
from provisioner.core.models import Decision
from provisioner.core.validation import render_summary
from provisioner.services.container import ServiceContainer

logger = logging.getLogger(__name__)

USAGE = """\
1. 从当前进度自动执行
   读取进度文件，从最后完成步骤的下一步开始顺序执行。
   任一步骤失败或被取消即停止，处理后再次选择本项即可续跑。

2. 只执行指定步骤
   任何步骤都可以重复执行；重跑较早的步骤不会回退进度。

3. 部署参数
   DRY_RUN=1 时只打印命令不执行，但确认流程与进度提交与真实执行一致。
   切换 DRY_RUN 以及修改任何参数都需要再次确认。

4. 整体配置校验
   只读检查系统现状，与 DRY_RUN 无关。存在 FAIL 项时不应继续部署。

5. 查看安装日志
   显示最近的步骤与命令事件。
"""


def _mask(key: str, value: object) -> str:
    if value in ("", None):
        return "<未设置>"
    if is_secret_key(key):
        return "********"
    return str(value)


class InteractiveMenu:
    """主菜单循环"""

    def __init__(self, container: ServiceContainer) -> None:
        self.c = container
        if self.c.gate is None:
            self.c.gate = QuestionaryGate()
        self._selected: str | None = None

    def run(self) -> None:
        state = MenuState.MENU
        while not is_terminal(state):
            event = self._handle(state)
            state = transition(state, event)
        logger.info("退出交互菜单")

    def _handle(self, state: MenuState) -> MenuEvent:
        handlers = {
            MenuState.MENU: self._main_menu,
            MenuState.STEP_SELECT: self._select_step,
            MenuState.RUNNING: self._run,
            MenuState.VALIDATING: self._validate,
            MenuState.CONFIGURING: self._configure,
            MenuState.CONFIRM_EXIT: self._confirm_exit,
        }
        return handlers[state]()

    # ---- 主菜单 ----

    def _status_panel(self) -> Panel:
        s = self.c.orchestrator.status()
        if s["last_completed_step"]:
            progress = (
                f"最后完成步骤: {s['last_completed_step']}\n"
                f"最后执行时间: {s['last_run_time']}"
            )
        else:
            progress = "尚未完成任何步骤。"
        return Panel(
            f"{progress}\n\n进度: {s['completed']}/{s['total']}  "
            f"DRY_RUN={1 if s['dry_run'] else 0}\n"
            f"状态文件: {self.c.settings.state_path}",
            title="provisioner 主菜单", border_style="cyan",
        )

    def _main_menu(self) -> MenuEvent:
        console.print(self._status_panel())
        choices = [questionary.Choice(label, value=event) for label, event in MAIN_MENU]
        event = questionary.select(
            "请选择操作:", choices=choices, style=PROMPT_STYLE,
        ).ask()
        if event is None:
            return MenuEvent.CANCEL
        if event is MenuEvent.CHOOSE_LOG:
            print_log(self.c.events.tail(self.c.settings.log_tail_lines))
        elif event is MenuEvent.CHOOSE_HELP:
            console.print(Panel(USAGE, title="使用说明"))
        elif event is MenuEvent.CHOOSE_AUTO:
            self._selected = None
        return event

    def _select_step(self) -> MenuEvent:
        choices = [questionary.Choice(s.name, value=s.id) for s in self.c.registry]
        if not choices:
            console.print("[yellow]步骤目录为空。[/yellow]")
            return MenuEvent.CANCEL
        step_id = questionary.select(
            "选择要执行的步骤:", choices=choices, style=PROMPT_STYLE,
        ).ask()
        if step_id is None:
            return MenuEvent.CANCEL
        self._selected = step_id
        return MenuEvent.SELECTED

    # ---- 执行 ----

    def _run(self) -> MenuEvent:
        orch = self.c.orchestrator
        log_path = str(self.c.events.path or "")

        if self._selected is not None:
            step_id, self._selected = self._selected, None
            print_result(orch.run_step(step_id), log_path)
            return MenuEvent.FINISHED

        next_id = orch.resume_point()
        if next_id is None:
            console.print(f"[green]所有步骤均已完成。[/green] [dim]{self.c.settings.state_path}[/dim]")
            return MenuEvent.FINISHED

        name = self.c.registry.get(next_id).name
        if confirm(f"下一步骤为 {name}，是否从此处开始顺序执行?", default=True) is not Decision.CONFIRMED:
            logger.info("用户取消自动执行")
            return MenuEvent.CANCEL

        last = None
        for result in orch.auto_continue():
            print_result(result, log_path)
            last = result
        if last is not None and not last.done:
            console.print(f"[yellow]步骤执行已停止。[/yellow] [dim]详见日志: {log_path}[/dim]")
        return MenuEvent.FINISHED

    def _validate(self) -> MenuEvent:
        report = self.c.validation.run_all()
        print_report(report)
        console.print(Panel(render_summary(report), title="校验汇总"))
        return MenuEvent.FINISHED

    # ---- 部署参数 ----

    def _settings_table(self) -> Table:
        store = self.c.config_store
        table = Table(title="当前部署参数")
        table.add_column("键")
        table.add_column("值")
        for key in store.keys():
            table.add_row(key, _mask(key, store.get(key)))
        return table

    def _configure(self) -> MenuEvent:
        store = self.c.config_store
        while True:
            console.print(self._settings_table())
            action = questionary.select(
                "部署参数:",
                choices=[
                    questionary.Choice("切换 DRY_RUN (0/1)", value="toggle"),
                    questionary.Choice("修改参数", value="set"),
                    questionary.Choice("返回", value="back"),
                ],
                style=PROMPT_STYLE,
            ).ask()
            if action is None:
                return MenuEvent.CANCEL
            if action == "back":
                return MenuEvent.FINISHED
            try:
                if action == "toggle":
                    self._toggle_dry_run()
                else:
                    self._set_value(list(store.keys()))
            except ConfigError as e:
                console.print(f"[red]{e}[/red]")

    def _toggle_dry_run(self) -> None:
        store = self.c.config_store
        if store.dry_run:
            question = "当前 DRY_RUN=1（模拟模式）。是否切换为 DRY_RUN=0（真实执行）?"
            target = 0
        else:
            question = "当前 DRY_RUN=0（真实执行）。是否切换为 DRY_RUN=1（模拟模式）?"
            target = 1
        if confirm(question) is Decision.CONFIRMED:
            store.set("DRY_RUN", target)
            console.print(f"DRY_RUN 已设置为 {target}。")

    def _set_value(self, keys: list[str]) -> None:
        store = self.c.config_store
        key = questionary.select("选择参数:", choices=keys, style=PROMPT_STYLE).ask()
        if key is None:
            return
        current = store.get(key)
        if is_secret_key(key):
            value = questionary.password(f"{key}:", style=PROMPT_STYLE).ask()
        else:
            value = questionary.text(
                f"{key}:", default="" if current is None else str(current),
                style=PROMPT_STYLE,
            ).ask()
        if value is None:
            return
        if confirm(f"将 {key} 设置为 {_mask(key, value)}?") is Decision.CONFIRMED:
            store.set(key, value)
            console.print(f"{key} 已更新。")

    # ---- 退出 ----

    def _confirm_exit(self) -> MenuEvent:
        decision = confirm("确定退出 provisioner?", default=True)
        return {
            Decision.CONFIRMED: MenuEvent.CONFIRM,
            Decision.DECLINED: MenuEvent.DECLINE,
            Decision.CANCELED: MenuEvent.CANCEL,
        }[decision]
