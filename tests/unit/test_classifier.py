"""Unit tests for CompatibilityClassifier"""

from mtr.analysis.classifier import CompatibilityClassifier
from mtr.analysis.parser import InterfaceParser
from mtr.fetch.fetcher import SourceFile
from mtr.models.glue import InterfaceCategory, InterfaceOrigin, InterfaceRecord, Severity, SourceLocation
from mtr.registry.interfaces import InterfaceRegistry


def record(name: str, module_path: str = "demo_hal", origin=InterfaceOrigin.DECLARED) -> InterfaceRecord:
    return InterfaceRecord(
        name=name,
        module_path=module_path,
        declared_at=SourceLocation(path="src/lib.rs", line=1),
        origin=origin,
    )


class TestClassification:
    """Classification against an ad hoc registry"""

    def test_pins_mockable_custom_warned(self, pin_registry):
        """OutputPin and InputPin are mockable, CustomTrait yields one warning"""
        records = [record("OutputPin"), record("InputPin"), record("CustomTrait")]

        result = CompatibilityClassifier(pin_registry).classify(records)

        assert result.mockable == ["InputPin", "OutputPin"]
        assert len(result.diagnostics) == 1
        warning = result.diagnostics[0]
        assert warning.severity == Severity.WARNING
        assert warning.message == "interface 'CustomTrait' may not be available for native testing"
        assert warning.related_interface == "demo_hal::CustomTrait"

    def test_categories_assigned(self, pin_registry):
        result = CompatibilityClassifier(pin_registry).classify([record("OutputPin"), record("Uart")])

        output_pin, uart = result.records
        assert output_pin.category == InterfaceCategory.DIGITAL_IO
        assert output_pin.mockable is True
        assert uart.category == InterfaceCategory.CUSTOM
        assert uart.mockable is False

    def test_input_records_untouched(self, pin_registry):
        records = [record("OutputPin"), record("CustomTrait")]

        CompatibilityClassifier(pin_registry).classify(records)

        assert all(r.category is None and not r.mockable for r in records)

    def test_one_warning_per_name(self, pin_registry):
        records = [record("Custom", "a"), record("Custom", "b"), record("Other")]

        result = CompatibilityClassifier(pin_registry).classify(records)

        assert [d.related_interface for d in result.diagnostics] == ["a::Custom", "demo_hal::Other"]

    def test_mockable_deduplicated(self, pin_registry):
        records = [record("OutputPin", "a"), record("OutputPin", "b")]

        assert CompatibilityClassifier(pin_registry).classify(records).mockable == ["OutputPin"]

    def test_empty_input(self, pin_registry):
        result = CompatibilityClassifier(pin_registry).classify([])

        assert result.records == []
        assert result.mockable == []
        assert result.diagnostics == []


class TestEmbeddedRegistryRules:
    """Name and module rules of the shipped registry"""

    def setup_method(self):
        self.classifier = CompatibilityClassifier(InterfaceRegistry())

    def test_parsed_crate_root_traits(self):
        """Pins declared in a HAL's crate root are mockable, CustomTrait is not"""
        files = [
            SourceFile(path="Cargo.toml", data=b'[package]\nname = "demo-hal"\nversion = "0.1.0"\n'),
            SourceFile(path="src/lib.rs", data=b"pub trait OutputPin {}\npub trait InputPin {}\npub trait CustomTrait {}\n"),
        ]
        parsed = InterfaceParser().parse(files, repository_name="demo-hal")

        result = self.classifier.classify(parsed.records)

        assert result.mockable == ["InputPin", "OutputPin"]
        assert [d.message for d in result.diagnostics] == [
            "interface 'CustomTrait' may not be available for native testing"
        ]

    def test_name_match_in_any_module(self):
        result = self.classifier.classify([
            record("OutputPin", "my_hal::gpio"),
            record("SpiBus", "embedded_hal::spi"),
            record("I2c", "rp_hal"),
        ])

        assert result.mockable == ["I2c", "OutputPin", "SpiBus"]
        assert result.diagnostics == []

    def test_strict_entry_outside_listed_module(self):
        result = self.classifier.classify([record("Write", "my_hal::flash")])

        assert result.mockable == []
        assert result.records[0].category == InterfaceCategory.CUSTOM

    def test_unresolved_name_matches_lenient_entry(self):
        result = self.classifier.classify([record("DelayMs", "", InterfaceOrigin.IMPLEMENTED)])
        assert result.records[0].category == InterfaceCategory.TIMER

    def test_unresolved_name_rejected_by_strict_entry(self):
        result = self.classifier.classify([record("Write", "", InterfaceOrigin.IMPLEMENTED)])

        assert result.mockable == []
        assert result.diagnostics[0].related_interface == "Write"

    def test_strict_entry_in_listed_module(self):
        result = self.classifier.classify([record("Write", "embedded_hal::blocking::serial")])
        assert result.records[0].category == InterfaceCategory.UART
