"""
User-facing texts (Japanese)
"""
from triplog.state_machine.states import DraftField, UserState

PROMPTS: dict[UserState, str] = {
    UserState.DEPARTURE_POINT: "出発地点を入力してください。\n現在地ボタンまたは住所を手入力できます。",
    UserState.STORE_NAME: "店舗名を入力してください。",
    UserState.VIA_POINT: (
        "経由地を入力してください。\n現在地ボタンまたは住所を手入力できます。\n"
        "スキップする場合は「進む」ボタンを押してください。"
    ),
    UserState.ARRIVAL_TIME: "「目的地に到着」ボタンを押すか、到着日時を入力してください。\n（形式：yyyy/MM/dd HHmm）",
    UserState.DESTINATION: "目的地を入力してください。\n現在地ボタンまたは住所を手入力できます。",
    UserState.DISTANCE: "走行距離を入力してください。（数値のみ）",
    UserState.AMOUNT: "金額を入力してください。（数値のみ）",
    UserState.VEHICLE_NUMBER: "車両番号を選択または入力してください。",
    UserState.NOTE: "備考を入力してください。\nスキップする場合は「進む」ボタンを押してください。",
    UserState.CONFIRM: "登録内容の確認",
    UserState.REPORT_DATE_SELECT: "日報を表示する日付を選択してください。",
    UserState.REPORT_VEHICLE_SELECT: "車両番号を選択してください。",
}

# Shown in the timeout card ("前回の入力（…）が残っています")
STATE_LABELS: dict[UserState, str] = {
    UserState.IDLE: "アイドル",
    UserState.DEPARTURE_POINT: "出発地点入力中",
    UserState.STORE_NAME: "店舗名入力中",
    UserState.VIA_POINT: "経由地入力中",
    UserState.ARRIVAL_TIME: "到着日時入力中",
    UserState.DESTINATION: "目的地入力中",
    UserState.DISTANCE: "走行距離入力中",
    UserState.AMOUNT: "金額入力中",
    UserState.VEHICLE_NUMBER: "車両番号入力中",
    UserState.NOTE: "備考入力中",
    UserState.CONFIRM: "新規登録確認中",
    UserState.REPORT_DATE_SELECT: "日報_日付選択中",
    UserState.REPORT_VEHICLE_SELECT: "日報_車両選択中",
}

# Confirm card / report rows, in display order
FIELD_LABELS: dict[DraftField, str] = {
    DraftField.DEPARTURE_TIME: "出発日時",
    DraftField.DEPARTURE_POINT: "出発地点",
    DraftField.STORE_NAME: "店舗名",
    DraftField.VIA_POINT: "経由地",
    DraftField.ARRIVAL_TIME: "到着日時",
    DraftField.DESTINATION: "目的地",
    DraftField.DISTANCE: "走行距離",
    DraftField.AMOUNT: "金額",
    DraftField.VEHICLE_NUMBER: "車両番号",
    DraftField.NOTE: "備考",
}

INVALID_FORMAT = "入力形式が正しくありません。もう一度入力してください。"
COMMUNICATION_ERROR = "通信エラーが発生しました。もう一度お試しください。"
READ_ERROR = "データの読み取りに失敗しました。しばらく経ってからお試しください。"
WRITE_ERROR = "データの保存に失敗しました。もう一度お試しください。"
NO_DATA = "本日のデータはありません"

IDLE_GUIDANCE = "「新規」と入力して新規登録を開始してください。"
NEW_RECORD_STARTED = "新規登録を開始します。"
CANCELLED = "操作をキャンセルしました。"
ENTRY_CANCELLED = "新規登録をキャンセルしました。"
CANNOT_SKIP = "この項目はスキップできません。"
ARRIVED_ONLY_ON_ARRIVAL = "この操作は到着日時入力時のみ有効です。"
LOCATION_NOT_ALLOWED = "この項目では位置情報を使用できません。"
REGISTERED = "登録が完了しました。"
STATE_RESET = "状態をリセットしました。"
RESTART = "エラーが発生しました。最初からやり直してください。"
UNKNOWN_ACTION = "不明な操作です。"
REPORT_TITLE = "日報"

CONFIRM_TITLE = "登録内容の確認"
CONFIRM_REGISTER_LABEL = "登録する"
CONFIRM_MODIFY_LABEL = "修正する"
TIMEOUT_CONTINUE_LABEL = "続きから入力"
TIMEOUT_RESET_LABEL = "最初から"

BACK_LABEL = "戻る"
CANCEL_LABEL = "取消"
FORWARD_LABEL = "進む"
ARRIVED_LABEL = "目的地に到着"
LOCATION_LABEL = "現在地"


def missing_field(field: DraftField) -> str:
    return f"必須項目（{FIELD_LABELS[field]}）が入力されていません。"


def timeout_question(state: UserState) -> str:
    return f"前回の入力（{STATE_LABELS[state]}）が残っています。\n続きから入力しますか？"
