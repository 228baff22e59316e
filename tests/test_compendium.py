"""Tests for magic item, feat, background and class table decoding."""

import pytest

from dnd_companion.decoding import (
    decode_background,
    decode_backgrounds,
    decode_class_table,
    decode_class_tables,
    decode_feat,
    decode_feats,
    decode_magic_item,
    decode_magic_items,
)
from dnd_companion.errors import DecodeError, MissingRequiredField
from dnd_companion.models import Background, ClassTableRow, Feat, MagicItem, MagicItemName


def _item(*properties, type="Чудесный предмет", rarity="редкий"):
    return MagicItem(
        names=[MagicItemName(name_ru="Предмет")],
        type=type,
        rarity=rarity,
        properties=list(properties),
    )


# ============================================================================
# Magic items
# ============================================================================

class TestDecodeMagicItem:
    def test_compendium_entry(self, compendium_magic_items_doc):
        item = decode_magic_item(compendium_magic_items_doc[0])

        assert item.id == "adamantine-armor"
        assert item.display_name == "Адамантиновый доспех"
        assert item.names[0].name_en == "Adamantine Armor"
        assert item.descriptions == ["Этот доспех укреплён адамантином."]
        assert item.url == "https://example.org/items/adamantine-armor"
        assert item.tables == []
        assert item.is_favorite is False

    def test_tables(self, compendium_magic_items_doc):
        table = decode_magic_item(compendium_magic_items_doc[1]).tables[0]

        assert table.title == "Карты"
        assert table.headers == ["Игральная карта", "Карта"]
        assert table.rows == [["Туз бубен", "Визирь"], ["Король бубен", "Солнце"]]

    def test_round_trip(self, compendium_magic_items_doc):
        item = decode_magic_item(compendium_magic_items_doc[1])
        assert decode_magic_item(item.model_dump(mode="json", by_alias=True)) == item

    def test_single_name_key(self):
        item = decode_magic_item({"name": "Плащ эльфов", "properties": "Чудесный предмет, необычный"})

        assert item.display_name == "Плащ эльфов"
        assert item.properties == ["Чудесный предмет, необычный"]

    def test_empty_names_is_missing(self):
        with pytest.raises(MissingRequiredField, match="names"):
            decode_magic_item({"names": [], "rarity": "редкий"})

    def test_not_an_object(self):
        with pytest.raises(DecodeError):
            decode_magic_item("Плащ")

    def test_list_drops_bad_entries(self, compendium_magic_items_doc, caplog):
        with caplog.at_level("WARNING", logger="dnd-companion.decoding"):
            items = decode_magic_items(compendium_magic_items_doc)

        assert [i.id for i in items] == ["adamantine-armor", "deck-of-many-things"]
        assert "Malformed element 2 in 'magic items'" in caplog.text
        assert "Malformed element 3 in 'magic items'" in caplog.text

    def test_list_not_a_list(self):
        assert decode_magic_items({"items": []}) == []


class TestMagicItemProperties:
    @pytest.mark.parametrize(
        "line, item_type, rarity",
        [
            ("Чудесный предмет, очень редкий", "Чудесный предмет", "очень редкий"),
            ("Доспех (средний или тяжёлый, кроме шкурного), необычный", "Доспех", "необычный"),
            ("Оружие (любое), необычное", "Оружие", "необычное"),
            ("Чудесный предмет, артефакт (требуется настройка)", "Чудесный предмет", "артефакт"),
        ],
    )
    def test_type_and_rarity_from_first_property(self, line, item_type, rarity):
        item = _item(line)

        assert item.extracted_type == item_type
        assert item.extracted_rarity == rarity

    def test_rarity_word_without_comma(self):
        item = _item("Кольцо очень редкое (требуется настройка)")

        assert item.extracted_type == "Кольцо очень редкое"
        assert item.extracted_rarity == "очень редкое"

    def test_no_rarity_word_falls_back(self):
        assert _item("Зелье").extracted_rarity == "редкий"

    def test_long_first_property_falls_back(self):
        item = _item("Этот предмет, " + "очень длинное описание " * 10, type="Кольцо", rarity="легендарный")

        assert item.extracted_type == "Кольцо"
        assert item.extracted_rarity == "легендарный"

    def test_no_properties(self):
        item = _item(type="Посох", rarity="редкий")
        assert (item.extracted_type, item.extracted_rarity) == ("Посох", "редкий")

    def test_cost_and_weight(self, compendium_magic_items_doc):
        item = decode_magic_item(compendium_magic_items_doc[0])

        assert item.cost == "101-500 зм"
        assert item.weight == "20 фунтов"

    def test_cost_and_weight_absent(self, compendium_magic_items_doc):
        item = decode_magic_item(compendium_magic_items_doc[1])
        assert (item.cost, item.weight) == (None, None)

    def test_weight_with_trailing_punctuation(self):
        assert _item("Чудесный предмет, редкий", "Весит 3 фунта.").weight == "3 фунта"

    def test_display_name_falls_back_to_english(self):
        item = MagicItem(names=[MagicItemName(name_ru="", name_en="Bag of Holding")])
        assert item.display_name == "Bag of Holding"


# ============================================================================
# Feats and backgrounds
# ============================================================================

class TestDecodeFeat:
    def test_compendium_keys(self):
        feat = decode_feat(
            {
                "Название": "Бдительный",
                "Категория": "Общая",
                "Требования": "4 уровень",
                "Повышение характеристики": "",
                "Описание": "Вас невозможно застать врасплох.",
            }
        )

        assert feat.name == "Бдительный"
        assert feat.category == "Общая"
        assert feat.requirements == "4 уровень"
        assert feat.description == "Вас невозможно застать врасплох."
        assert feat.is_favorite is False

    def test_round_trip(self):
        feat = Feat(name="Атлет", ability_increase="Сила или Ловкость +1", is_favorite=True)
        assert decode_feat(feat.model_dump(mode="json", by_alias=True)) == feat

    def test_name_required(self):
        with pytest.raises(MissingRequiredField):
            decode_feat({"Категория": "Общая"})

    def test_list_drops_nameless(self):
        feats = decode_feats([{"Название": "Везунчик"}, {"Описание": "Без названия"}])
        assert [f.name for f in feats] == ["Везунчик"]


class TestDecodeBackground:
    def test_compendium_keys(self):
        background = decode_background(
            {
                "Название": "Мудрец",
                "Характеристики": "Интеллект, Мудрость",
                "Черта": "Посвящённый в магию",
                "Навыки": "Магия, История",
                "Инструменты": "Инструменты каллиграфа",
                "Снаряжение": "Бутылка чернил, перо",
                "Описание": "Годы за книгами.",
            }
        )

        assert background.name == "Мудрец"
        assert background.ability_scores == "Интеллект, Мудрость"
        assert background.feat == "Посвящённый в магию"
        assert background.skills == "Магия, История"
        assert background.tools == "Инструменты каллиграфа"
        assert background.equipment == "Бутылка чернил, перо"

    def test_round_trip(self):
        background = Background(name="Солдат", skills="Атлетика, Запугивание")
        assert decode_background(background.model_dump(mode="json", by_alias=True)) == background

    def test_list_not_a_list(self):
        assert decode_backgrounds("Мудрец") == []


# ============================================================================
# Class tables
# ============================================================================

class TestDecodeClassTable:
    def test_compendium_table(self, compendium_class_table_doc):
        table = decode_class_table(compendium_class_table_doc)

        assert table.class_name == "Варвар"
        assert table.slug == "barbarian"
        assert table.source_url == "https://example.org/classes/barbarian"
        assert table.extra_columns == ["Ярость", "Урон ярости"]

    def test_incomplete_row_is_dropped(self, compendium_class_table_doc, caplog):
        with caplog.at_level("WARNING", logger="dnd-companion.decoding"):
            table = decode_class_table(compendium_class_table_doc)

        assert [row.level for row in table.rows] == ["1", "2", "20"]
        assert "Malformed element 2 in 'rows'" in caplog.text

    def test_dynamic_columns(self, compendium_class_table_doc):
        row = decode_class_table(compendium_class_table_doc).row_for_level(20)

        assert row.proficiency_bonus == "+6"
        assert row.additional_data == {"Ярость": "Неограниченно", "Урон ярости": "+4"}
        assert row.get("Ярость") == "Неограниченно"
        assert row.get("Бонус владения") == "+6"
        assert row.get("Заметки") is None

    def test_missing_level(self, compendium_class_table_doc):
        assert decode_class_table(compendium_class_table_doc).row_for_level(7) is None

    def test_round_trip(self, compendium_class_table_doc):
        table = decode_class_table(compendium_class_table_doc)
        assert decode_class_table(table.model_dump(mode="json", by_alias=True)) == table

    def test_class_required(self, compendium_class_table_doc):
        del compendium_class_table_doc["class"]
        with pytest.raises(MissingRequiredField, match="class_name"):
            decode_class_table(compendium_class_table_doc)

    def test_list_of_tables(self, compendium_class_table_doc):
        tables = decode_class_tables([compendium_class_table_doc, {"slug": "nameless"}])
        assert [t.class_name for t in tables] == ["Варвар"]

    def test_row_model_get(self):
        row = ClassTableRow(level="5", proficiency_bonus="+3", class_features="Дополнительная атака")

        assert row.get("Уровень") == "5"
        assert row.get("Классовые умения") == "Дополнительная атака"
