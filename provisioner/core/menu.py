"""交互菜单状态机

把“菜单循环、取消返回菜单、退出需确认”的控制流表达为显式有限状态机。
transition() 是纯函数，与任何渲染层无关，可单独测试。

  MENU ──CHOOSE_AUTO──────> RUNNING ──FINISHED/CANCEL──> MENU
   │  ──CHOOSE_STEP──────> STEP_SELECT ──SELECTED──> RUNNING
   │                            └──CANCEL──> MENU
   │  ──CHOOSE_VALIDATE──> VALIDATING ──FINISHED/CANCEL──> MENU
   │  ──CHOOSE_CONFIG────> CONFIGURING ──FINISHED/CANCEL──> MENU
   │  ──CHOOSE_EXIT─────────> CONFIRM_EXIT ──CONFIRM──> EXITED
   │                               └──DECLINE/CANCEL──> MENU
   └──CANCEL (Esc)──> MENU
"""

from __future__ import annotations

from enum import Enum


class MenuState(str, Enum):
    MENU = "MENU"
    STEP_SELECT = "STEP_SELECT"
    RUNNING = "RUNNING"
    VALIDATING = "VALIDATING"
    CONFIGURING = "CONFIGURING"
    CONFIRM_EXIT = "CONFIRM_EXIT"
    EXITED = "EXITED"


class MenuEvent(str, Enum):
    CHOOSE_AUTO = "CHOOSE_AUTO"
    CHOOSE_STEP = "CHOOSE_STEP"
    CHOOSE_VALIDATE = "CHOOSE_VALIDATE"
    CHOOSE_CONFIG = "CHOOSE_CONFIG"
    CHOOSE_LOG = "CHOOSE_LOG"
    CHOOSE_HELP = "CHOOSE_HELP"
    CHOOSE_EXIT = "CHOOSE_EXIT"
    SELECTED = "SELECTED"
    FINISHED = "FINISHED"
    CONFIRM = "CONFIRM"
    DECLINE = "DECLINE"
    CANCEL = "CANCEL"


_TABLE: dict[MenuState, dict[MenuEvent, MenuState]] = {
    MenuState.MENU: {
        MenuEvent.CHOOSE_AUTO: MenuState.RUNNING,
        MenuEvent.CHOOSE_STEP: MenuState.STEP_SELECT,
        MenuEvent.CHOOSE_VALIDATE: MenuState.VALIDATING,
        MenuEvent.CHOOSE_CONFIG: MenuState.CONFIGURING,
        # 日志与帮助是只读弹窗，显示完仍在主菜单
        MenuEvent.CHOOSE_LOG: MenuState.MENU,
        MenuEvent.CHOOSE_HELP: MenuState.MENU,
        MenuEvent.CHOOSE_EXIT: MenuState.CONFIRM_EXIT,
        # 主菜单上 Esc 只重新显示菜单，退出只能经由“退出”项
        MenuEvent.CANCEL: MenuState.MENU,
    },
    MenuState.STEP_SELECT: {
        MenuEvent.SELECTED: MenuState.RUNNING,
        MenuEvent.CANCEL: MenuState.MENU,
    },
    MenuState.RUNNING: {
        MenuEvent.FINISHED: MenuState.MENU,
        MenuEvent.CANCEL: MenuState.MENU,
    },
    MenuState.VALIDATING: {
        MenuEvent.FINISHED: MenuState.MENU,
        MenuEvent.CANCEL: MenuState.MENU,
    },
    MenuState.CONFIGURING: {
        MenuEvent.FINISHED: MenuState.MENU,
        MenuEvent.CANCEL: MenuState.MENU,
    },
    MenuState.CONFIRM_EXIT: {
        MenuEvent.CONFIRM: MenuState.EXITED,
        MenuEvent.DECLINE: MenuState.MENU,
        MenuEvent.CANCEL: MenuState.MENU,
    },
    MenuState.EXITED: {},
}


def transition(state: MenuState, event: MenuEvent) -> MenuState:
    """下一个状态；当前状态不接受的事件被忽略（停留原状态）"""
    return _TABLE[state].get(event, state)


def accepted_events(state: MenuState) -> frozenset[MenuEvent]:
    return frozenset(_TABLE[state])


def is_terminal(state: MenuState) -> bool:
    return not _TABLE[state]


# 主菜单选项 → 事件（渲染层按此顺序展示）
MAIN_MENU: list[tuple[str, MenuEvent]] = [
    ("从当前进度自动执行后续步骤", MenuEvent.CHOOSE_AUTO),
    ("只执行指定步骤", MenuEvent.CHOOSE_STEP),
    ("部署参数 (DRY_RUN 等)", MenuEvent.CHOOSE_CONFIG),
    ("整体配置校验", MenuEvent.CHOOSE_VALIDATE),
    ("查看安装日志", MenuEvent.CHOOSE_LOG),
    ("使用说明", MenuEvent.CHOOSE_HELP),
    ("退出", MenuEvent.CHOOSE_EXIT),
]
