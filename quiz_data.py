from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

CUSTOM_OPTION = "Свой вариант"
DIAGNOSTIC_DEPARTMENT = "diagnostic"


@dataclass(frozen=True)
class Question:
    id: int
    text: str
    category: str
    explanation: Optional[str] = None
    examples: Tuple[str, ...] = ()
    options: Tuple[str, ...] = ()
    multiple: bool = False

    @property
    def allows_custom(self) -> bool:
        return CUSTOM_OPTION in self.options

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"id": self.id, "text": self.text, "category": self.category}
        if self.explanation:
            data["explanation"] = self.explanation
        if self.examples:
            data["examples"] = list(self.examples)
        if self.options:
            data["options"] = list(self.options)
            data["multiple"] = self.multiple
        return data


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    emoji: str
    description: str
    warning_threshold: str
    warning_below: int  # scores strictly below this value trigger the warning
    full_description: str
    warning_text: str
    detailed_warning: str
    questions: Tuple[Question, ...] = field(default_factory=tuple)

    def is_warning(self, score: int) -> bool:
        return score < self.warning_below


@dataclass(frozen=True)
class RatingOption:
    value: int
    label: str
    description: str


@dataclass(frozen=True)
class Interpretation:
    min_score: int
    max_score: int
    level: str
    emoji: str
    title: str
    description: str
    recommendations: Tuple[str, ...]

    @property
    def range(self) -> str:
        return f"{self.min_score}-{self.max_score}"

    def contains(self, total: int) -> bool:
        return self.min_score <= total <= self.max_score


@dataclass(frozen=True)
class SurveySection:
    position: str
    questions: Tuple[Question, ...]


@dataclass(frozen=True)
class Department:
    id: str
    name: str
    emoji: str
    sections: Tuple[SurveySection, ...]


CATEGORIES: List[Category] = [
    Category(
        id="data",
        name="ДАННЫЕ",
        emoji="📊",
        description="Оценка качества и доступности данных в вашей компании",
        warning_threshold="Если меньше 4 → ИИ будет работать на некачественных данных",
        warning_below=4,
        full_description=(
            "Данные - топливо для любой системы ИИ. Оценивается, насколько автоматизирован сбор данных, "
            "как часто они очищаются, насколько быстро сотрудники получают к ним доступ и можно ли "
            "сопоставить данные из разных систем."
        ),
        warning_text="Риск некачественных данных",
        detailed_warning=(
            "Модели, обученные на неполных или противоречивых данных, дают ошибочные прогнозы. "
            "Начните с аудита источников данных, назначьте ответственных за качество и настройте "
            "регулярную очистку."
        ),
        questions=(
            Question(
                id=1,
                text="Сбор: Данные собираются автоматически из надежных источников",
                category="data",
                explanation="Насколько сбор данных зависит от ручного ввода и пересылки файлов.",
                examples=(
                    "Заказы из интернет-магазина сразу попадают в CRM",
                    "Показания оборудования выгружаются по расписанию без участия людей",
                ),
            ),
            Question(
                id=2,
                text="Качество: Минимум ошибок, регулярная очистка данных",
                category="data",
                explanation="Есть ли дубли, пропуски и устаревшие записи, и кто за это отвечает.",
                examples=(
                    "В справочнике клиентов нет дублей",
                    "Раз в месяц проводится сверка остатков",
                ),
            ),
            Question(
                id=3,
                text="Доступность: Нужные данные можно получить быстро без участия IT",
                category="data",
                explanation="Может ли менеджер сам построить нужный отчет без заявки в IT.",
                examples=(
                    "Дашборд продаж обновляется ежедневно",
                    "Выгрузка делается за минуты, а не за дни",
                ),
            ),
            Question(
                id=4,
                text="Интеграция: Данные из разных систем легко сопоставляются",
                category="data",
                explanation="Связаны ли между собой учетная система, CRM и складские данные.",
                examples=(
                    "У клиента единый идентификатор во всех системах",
                    "Данные склада и продаж сводятся автоматически",
                ),
            ),
        ),
    ),
    Category(
        id="processes",
        name="ПРОЦЕССЫ",
        emoji="⚙️",
        description="Оценка стандартизации и эффективности бизнес-процессов",
        warning_threshold="Если меньше 3 → сначала нужно стандартизировать процесс",
        warning_below=3,
        full_description=(
            "Автоматизировать можно только то, что уже работает по понятным правилам. Оценивается "
            "документированность процессов, предсказуемость результата, наличие KPI и повторяемость "
            "выполнения разными сотрудниками."
        ),
        warning_text="Процессы не стандартизированы",
        detailed_warning=(
            "Внедрение ИИ в хаотичный процесс закрепит хаос. Опишите целевой процесс, согласуйте "
            "регламент и метрики, и только затем выбирайте задачи для автоматизации."
        ),
        questions=(
            Question(
                id=5,
                text="Описание: Процесс четко документирован, есть регламенты",
                category="processes",
                explanation="Существует ли актуальное описание шагов процесса, доступное сотрудникам.",
                examples=(
                    "Регламент обработки заявки лежит в базе знаний",
                    "Новый сотрудник может выполнить процесс по инструкции",
                ),
            ),
            Question(
                id=6,
                text="Стабильность: Результат процесса предсказуем",
                category="processes",
                explanation="Насколько сильно результат зависит от обстоятельств и конкретного исполнителя.",
                examples=(
                    "Срок обработки заказа почти не меняется",
                    "Доля брака стабильна от месяца к месяцу",
                ),
            ),
            Question(
                id=7,
                text="Измеримость: Есть KPI для оценки эффективности",
                category="processes",
                explanation="Можно ли цифрами ответить, хорошо ли работает процесс.",
                examples=(
                    "Отслеживается время ответа клиенту",
                    "Есть план и факт по количеству обработанных заявок",
                ),
            ),
            Question(
                id=8,
                text="Повторяемость: Процесс выполняется одинаково разными сотрудниками",
                category="processes",
                explanation="Дают ли разные исполнители одинаковый результат на одинаковых входных данных.",
                examples=(
                    "Расчет скидки не зависит от менеджера",
                    "Отчеты разных филиалов имеют одну структуру",
                ),
            ),
        ),
    ),
    Category(
        id="people",
        name="ЛЮДИ",
        emoji="👥",
        description="Оценка готовности команды к внедрению изменений",
        warning_threshold="Если меньше 3 → высокий риск сопротивления внедрению",
        warning_below=3,
        full_description=(
            "Технологии внедряют люди. Оценивается уровень навыков работы с данными, готовность "
            "команды к изменениям, ясность зон ответственности и системность обучения."
        ),
        warning_text="Высокий риск сопротивления",
        detailed_warning=(
            "Без поддержки команды новые инструменты не приживутся. Объясните цели изменений, "
            "назначьте внутренних чемпионов и заложите время на обучение до запуска пилота."
        ),
        questions=(
            Question(
                id=9,
                text="Компетенции: Сотрудники имеют навыки работы с данными",
                category="people",
                explanation="Умеют ли сотрудники читать отчеты, строить выборки и проверять цифры.",
                examples=(
                    "Менеджеры уверенно работают со сводными таблицами",
                    "В команде есть аналитик",
                ),
            ),
            Question(
                id=10,
                text="Мотивация: Команда готова к изменениям и автоматизации",
                category="people",
                explanation="Как сотрудники воспринимают автоматизацию своей работы.",
                examples=(
                    "Сотрудники сами предлагают, что автоматизировать",
                    "Прошлые внедрения прошли без саботажа",
                ),
            ),
            Question(
                id=11,
                text="Взаимодействие: Четкое разделение зон ответственности",
                category="people",
                explanation="Понятно ли, кто принимает решения и кто отвечает за результат.",
                examples=(
                    "У каждого процесса есть владелец",
                    "Споры между отделами решаются по регламенту",
                ),
            ),
            Question(
                id=12,
                text="Обучение: Регулярное повышение квалификации сотрудников",
                category="people",
                explanation="Есть ли в компании система обучения, а не разовые мероприятия.",
                examples=(
                    "Ежегодный план обучения для каждого отдела",
                    "Внутренние семинары по новым инструментам",
                ),
            ),
        ),
    ),
    Category(
        id="results",
        name="РЕЗУЛЬТАТЫ",
        emoji="🎯",
        description="Оценка измеримости и мониторинга результатов",
        warning_threshold="Если меньше 4 → будет сложно оценить эффект от внедрения ИИ",
        warning_below=4,
        full_description=(
            "Эффект от ИИ нужно уметь доказать. Оценивается, можно ли количественно измерить "
            "результат, есть ли цели автоматизации, отслеживается ли эффективность и анализируется "
            "ли процесс для улучшений."
        ),
        warning_text="Эффект будет сложно измерить",
        detailed_warning=(
            "Без базовых метрик невозможно понять, окупилось ли внедрение. Зафиксируйте текущие "
            "показатели процесса до старта проекта и договоритесь о целевых значениях."
        ),
        questions=(
            Question(
                id=13,
                text="Измеримость: Результаты процесса можно количественно оценить",
                category="results",
                explanation="Выражается ли результат процесса в числах: деньгах, часах, штуках.",
                examples=(
                    "Известна себестоимость обработки одной заявки",
                    "Считается конверсия на каждом этапе воронки",
                ),
            ),
            Question(
                id=14,
                text="Целеполагание: Есть четкие цели для автоматизации",
                category="results",
                explanation="Понятно ли, какой результат должна дать автоматизация.",
                examples=(
                    "Цель - сократить время ответа клиенту вдвое",
                    "Цель - снизить долю ручного ввода до 10%",
                ),
            ),
            Question(
                id=15,
                text="Мониторинг: Эффективность процесса регулярно отслеживается",
                category="results",
                explanation="Смотрит ли кто-то на показатели процесса регулярно.",
                examples=(
                    "Еженедельная планерка по метрикам",
                    "Автоматические оповещения при отклонениях",
                ),
            ),
            Question(
                id=16,
                text="Оптимизация: Процесс постоянно анализируется и улучшается",
                category="results",
                explanation="Приводит ли анализ показателей к реальным изменениям процесса.",
                examples=(
                    "Раз в квартал пересматриваются узкие места",
                    "Есть журнал улучшений процесса",
                ),
            ),
        ),
    ),
]

CATEGORY_BY_ID: Dict[str, Category] = {category.id: category for category in CATEGORIES}
CATEGORY_IDS: List[str] = [category.id for category in CATEGORIES]

DIAGNOSTIC_QUESTIONS: List[Question] = [
    question for category in CATEGORIES for question in category.questions
]

RATING_SCALE: List[RatingOption] = [
    RatingOption(1, "Полный хаос", "Процесс не описан, каждый работает по-своему"),
    RatingOption(2, "Начальная стадия", "Есть понимание проблемы, но нет системного подхода"),
    RatingOption(3, "Частичная стандартизация", "Есть базовые правила, но много исключений"),
    RatingOption(4, "Хорошая организация", "Процесс в основном формализован и работает стабильно"),
    RatingOption(5, "Идеальная система", "Процесс полностью формализован и постоянно улучшается"),
]
RATING_VALUES: Tuple[str, ...] = tuple(str(option.value) for option in RATING_SCALE)

INTERPRETATIONS: List[Interpretation] = [
    Interpretation(
        min_score=0,
        max_score=8,
        level="high-risk",
        emoji="🔴",
        title="Зона высокого риска",
        description="Внедрение ИИ приведет к увеличению хаоса. Сначала нужно:",
        recommendations=(
            "Стандартизировать ключевые процессы",
            "Наладить сбор и качество данных",
            "Подготовить команду к изменениям",
        ),
    ),
    Interpretation(
        min_score=9,
        max_score=14,
        level="preparation",
        emoji="🟡",
        title="Зона подготовки",
        description="Есть потенциал для внедрения ИИ, но требуется предварительная работа:",
        recommendations=(
            "Выберите 1-2 процесса с наибольшими баллами для пилота",
            "Разработайте дорожную карту улучшения слабых мест",
            "Начните с автоматизации простых, повторяющихся задач",
        ),
    ),
    Interpretation(
        min_score=15,
        max_score=20,
        level="ready",
        emoji="🟢",
        title="Зона готовности",
        description="Ваша компания готова к системному внедрению ИИ:",
        recommendations=(
            "Можно начинать с комплексных проектов",
            "Фокус на предиктивной аналитике и оптимизации",
            "Быстрое получение измеримых результатов",
        ),
    ),
]

# Survey variant: department -> position -> choice questions.
MANAGER_QUESTIONS: Tuple[Question, ...] = (
    Question(
        id=101,
        text="Какие задачи отдела отнимают больше всего времени?",
        category="survey",
        options=("Отчетность", "Согласования", "Планирование", "Контроль исполнения", CUSTOM_OPTION),
        multiple=True,
    ),
    Question(
        id=102,
        text="Как вы сейчас принимаете управленческие решения?",
        category="survey",
        options=("На основе данных и отчетов", "На основе опыта", "Коллегиально", CUSTOM_OPTION),
    ),
    Question(
        id=103,
        text="Какой эффект от автоматизации для вас важнее всего?",
        category="survey",
        options=("Экономия времени", "Снижение ошибок", "Прозрачность", "Снижение затрат", CUSTOM_OPTION),
    ),
)

EMPLOYEE_QUESTIONS: Tuple[Question, ...] = (
    Question(
        id=201,
        text="Какие рутинные операции вы выполняете каждый день?",
        category="survey",
        options=("Ввод данных", "Поиск информации", "Подготовка документов", "Переписка", CUSTOM_OPTION),
        multiple=True,
    ),
    Question(
        id=202,
        text="Сколько времени в день уходит на повторяющиеся задачи?",
        category="survey",
        options=("Меньше часа", "1-2 часа", "3-4 часа", "Больше половины дня"),
    ),
    Question(
        id=203,
        text="Используете ли вы ИИ-инструменты в работе?",
        category="survey",
        options=("Регулярно", "Иногда", "Пробовал(а), не прижилось", "Нет", CUSTOM_OPTION),
    ),
)

POSITION_MANAGER = "Руководитель"
POSITION_EMPLOYEE = "Сотрудник"


def _sections() -> Tuple[SurveySection, ...]:
    return (
        SurveySection(position=POSITION_MANAGER, questions=MANAGER_QUESTIONS),
        SurveySection(position=POSITION_EMPLOYEE, questions=EMPLOYEE_QUESTIONS),
    )


DEPARTMENTS: List[Department] = [
    Department(id="analytics", name="Аналитики", emoji="📈", sections=_sections()),
    Department(id="it", name="IT отдел", emoji="💻", sections=_sections()),
    Department(id="hr", name="HR отдел", emoji="🤝", sections=_sections()),
    Department(id="marketing", name="Маркетинг", emoji="📣", sections=_sections()),
    Department(id="legal", name="Юридический", emoji="⚖️", sections=_sections()),
]
DEPARTMENT_BY_ID: Dict[str, Department] = {department.id: department for department in DEPARTMENTS}


def find_section(department_id: str | None, position: str | None) -> SurveySection | None:
    department = DEPARTMENT_BY_ID.get(department_id or "")
    if department is None:
        return None
    for section in department.sections:
        if section.position == position:
            return section
    return None
